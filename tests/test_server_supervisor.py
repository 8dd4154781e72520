import subprocess

import pytest

from local_ai.domain.errors import ServerStartError
from local_ai.infrastructure.runtime.installer import BinaryInstaller, InstallLayout
from local_ai.infrastructure.runtime.platform import resolve_platform
from local_ai.infrastructure.runtime.polling import PollPolicy, poll_until
from local_ai.infrastructure.runtime.supervisor import MODELS_ENV_VAR, ServerSupervisor


class _FakeRuntime:
    """Answers is_running() from a script; the last answer repeats."""

    def __init__(self, answers):
        self._answers = list(answers)
        self.checks = 0

    def is_running(self):
        self.checks += 1
        if len(self._answers) > 1:
            return self._answers.pop(0)
        return self._answers[0]


class _FakeProcess:
    pid = 4242

    def __init__(self, exit_code=None, ignore_terminate=False, ignore_kill=False):
        self.exit_code = exit_code
        self.ignore_terminate = ignore_terminate
        self.ignore_kill = ignore_kill
        self.terminated = False
        self.killed = False

    def poll(self):
        return self.exit_code

    def terminate(self):
        self.terminated = True
        if not self.ignore_terminate:
            self.exit_code = -15

    def kill(self):
        self.killed = True
        if not self.ignore_kill:
            self.exit_code = -9

    def wait(self, timeout=None):
        if self.exit_code is None:
            raise subprocess.TimeoutExpired("ollama", timeout)
        return self.exit_code


class _FakePopen:
    def __init__(self, process=None, error=None):
        self.process = process or _FakeProcess()
        self.error = error
        self.calls = []

    def __call__(self, args, **kwargs):
        self.calls.append((args, kwargs))
        if self.error:
            raise self.error
        return self.process


def _supervisor(tmp_path, runtime, popen, installed=True, attempts=30):
    installer = BinaryInstaller(InstallLayout(tmp_path, resolve_platform("linux")))
    if installed:
        installer.binary_path.parent.mkdir(parents=True)
        installer.binary_path.write_bytes(b"#!")
    sleeps = []
    policy = PollPolicy(max_attempts=attempts, interval=1.0, sleep=sleeps.append)
    return ServerSupervisor(runtime, installer, poll_policy=policy, popen=popen), sleeps


def test_poll_until_sleeps_before_each_check():
    sleeps = []
    answers = iter([False, False, True])
    outcome = poll_until(lambda: next(answers), PollPolicy(5, 0.5, sleeps.append))
    assert outcome.succeeded and outcome.attempts == 3
    assert sleeps == [0.5, 0.5, 0.5]


def test_poll_policy_validation():
    with pytest.raises(ValueError):
        PollPolicy(max_attempts=0)
    with pytest.raises(ValueError):
        PollPolicy(interval=-1)


def test_external_runtime_is_never_owned(tmp_path):
    popen = _FakePopen()
    supervisor, sleeps = _supervisor(tmp_path, _FakeRuntime([True]), popen)

    assert supervisor.start_server() is True
    assert popen.calls == []
    assert sleeps == []
    assert supervisor.owns_process is False

    supervisor.stop_server()
    assert popen.process.terminated is False


def test_missing_binary_returns_false(tmp_path):
    popen = _FakePopen()
    supervisor, _ = _supervisor(tmp_path, _FakeRuntime([False]), popen, installed=False)
    assert supervisor.start_server() is False
    assert popen.calls == []


def test_spawns_serve_with_models_dir_and_polls(tmp_path):
    runtime = _FakeRuntime([False, False, False, True])
    popen = _FakePopen()
    supervisor, sleeps = _supervisor(tmp_path, runtime, popen)

    assert supervisor.start_server() is True

    args, kwargs = popen.calls[0]
    assert args == [str(tmp_path / "bin" / "ollama"), "serve"]
    assert kwargs["env"][MODELS_ENV_VAR] == str(tmp_path / "models")
    assert kwargs["stdout"] is subprocess.DEVNULL
    assert (tmp_path / "models").is_dir()
    assert sleeps == [1.0, 1.0, 1.0]
    assert supervisor.owns_process is True
    assert supervisor.handle.pid == 4242


def test_never_ready_gives_up_after_max_attempts(tmp_path):
    supervisor, sleeps = _supervisor(tmp_path, _FakeRuntime([False]), _FakePopen())
    assert supervisor.start_server() is False
    assert len(sleeps) == 30


def test_process_exit_stops_polling_early(tmp_path):
    popen = _FakePopen(process=_FakeProcess(exit_code=1))
    supervisor, sleeps = _supervisor(tmp_path, _FakeRuntime([False]), popen)
    assert supervisor.start_server() is False
    assert sleeps == [1.0]


def test_spawn_failure_raises(tmp_path):
    popen = _FakePopen(error=PermissionError("not executable"))
    supervisor, _ = _supervisor(tmp_path, _FakeRuntime([False]), popen)
    with pytest.raises(ServerStartError, match="not executable"):
        supervisor.start_server()
    assert supervisor.handle is None


def test_stop_terminates_owned_process_once(tmp_path):
    popen = _FakePopen()
    supervisor, _ = _supervisor(tmp_path, _FakeRuntime([False, True]), popen)
    supervisor.start_server()

    supervisor.stop_server()
    assert popen.process.terminated is True
    assert popen.process.killed is False
    assert supervisor.handle is None

    popen.process.terminated = False
    supervisor.stop_server()
    assert popen.process.terminated is False


def test_stop_kills_process_that_ignores_terminate(tmp_path):
    popen = _FakePopen(process=_FakeProcess(ignore_terminate=True))
    supervisor, _ = _supervisor(tmp_path, _FakeRuntime([False, True]), popen)
    supervisor.start_server()
    supervisor.stop_server()
    assert popen.process.killed is True


def test_unkillable_process_still_clears_handle(tmp_path):
    popen = _FakePopen(process=_FakeProcess(ignore_terminate=True, ignore_kill=True))
    supervisor, _ = _supervisor(tmp_path, _FakeRuntime([False, True]), popen)
    supervisor.start_server()

    supervisor.stop_server()

    assert popen.process.killed is True
    assert supervisor.handle is None


def test_blocked_models_dir_is_start_error(tmp_path):
    (tmp_path / "models").write_text("not a directory")
    popen = _FakePopen()
    supervisor, _ = _supervisor(tmp_path, _FakeRuntime([False]), popen)

    with pytest.raises(ServerStartError, match="models directory"):
        supervisor.start_server()
    assert popen.calls == []
