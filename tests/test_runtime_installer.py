import io
import os
import subprocess
import tarfile
import zipfile

import pytest
import requests

from local_ai.domain.errors import InstallError, PlatformUnsupportedError
from local_ai.infrastructure.runtime.installer import BinaryInstaller, InstallLayout
from local_ai.infrastructure.runtime.platform import ArchiveKind, platform_key, resolve_platform


class _FakeDownload:
    def __init__(self, payload=b"", status_error=None, with_length=True, chunk=7, break_after=None, total=None):
        self._payload = payload
        self._break_after = break_after
        self._status_error = status_error
        self._chunk = chunk
        self.headers = {"content-length": str(total or len(payload))} if with_length else {}

    def raise_for_status(self):
        if self._status_error:
            raise self._status_error

    def iter_content(self, chunk_size=None):
        sent = 0
        for i in range(0, len(self._payload), self._chunk):
            if self._break_after is not None and sent >= self._break_after:
                raise requests.exceptions.ChunkedEncodingError("Connection broken: IncompleteRead")
            piece = self._payload[i:i + self._chunk]
            sent += len(piece)
            yield piece

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False


class _FakeSession:
    def __init__(self, response=None, error=None):
        self._response = response
        self._error = error
        self.urls = []

    def get(self, url, stream=False, timeout=None):
        self.urls.append(url)
        if self._error:
            raise self._error
        return self._response


def _zip_bytes(files):
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        for name, data in files.items():
            zf.writestr(name, data)
    return buf.getvalue()


def _tgz_bytes(files):
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as tf:
        for name, data in files.items():
            info = tarfile.TarInfo(name)
            info.size = len(data)
            tf.addfile(info, io.BytesIO(data))
    return buf.getvalue()


def _tar_runner(calls, returncode=0):
    def run(args, **kwargs):
        calls.append(args)
        if returncode == 0:
            archive, dest = args[2], args[4]
            with tarfile.open(archive) as tf:
                if hasattr(tarfile, "data_filter"):
                    tf.extractall(dest, filter="data")
                else:
                    tf.extractall(dest)
        return subprocess.CompletedProcess(args, returncode, "", "boom" if returncode else "")
    return run


# -----------------
# Platform
# -----------------
@pytest.mark.parametrize("system,key", [
    ("win32", "win"), ("cygwin", "win"), ("darwin", "mac"), ("linux", "linux"), ("linux2", "linux"),
])
def test_platform_key(system, key):
    assert platform_key(system) == key


def test_resolve_platform_targets():
    linux = resolve_platform("linux")
    assert linux.archive_kind is ArchiveKind.TAR_GZ
    assert linux.download_url == (
        "https://github.com/ollama/ollama/releases/download/v0.16.2/ollama-linux-amd64.tgz"
    )
    assert linux.executable_name == "ollama"

    win = resolve_platform("win32", version="0.5.0")
    assert win.archive_kind is ArchiveKind.ZIP
    assert win.executable_name == "ollama.exe"
    assert win.is_windows
    assert "v0.5.0/ollama-windows-amd64.zip" in win.download_url

    mac = resolve_platform("darwin")
    assert mac.archive_kind is ArchiveKind.RAW_BINARY
    assert mac.download_url.endswith("/ollama-darwin")


def test_unsupported_platform():
    with pytest.raises(PlatformUnsupportedError) as exc:
        resolve_platform("sunos5")
    assert isinstance(exc.value, InstallError)


# -----------------
# Installer
# -----------------
def test_layout_paths(tmp_path):
    layout = InstallLayout(tmp_path, resolve_platform("win32"))
    assert layout.bin_dir == tmp_path / "bin"
    assert layout.models_dir == tmp_path / "models"
    assert layout.download_path == tmp_path / "ollama-download.tmp"
    assert layout.binary_path == tmp_path / "bin" / "ollama.exe"
    assert layout.extract_dir == (tmp_path / "bin").resolve()


def test_install_raw_binary_with_progress(tmp_path):
    payload = b"\x7fELF" + b"x" * 96
    session = _FakeSession(_FakeDownload(payload, chunk=25))
    installer = BinaryInstaller(InstallLayout(tmp_path, resolve_platform("darwin")), session=session)
    events = []

    assert installer.is_installed() is False
    assert installer.install(lambda m, p: events.append((m, p))) is True

    binary = tmp_path / "bin" / "ollama"
    assert binary.read_bytes() == payload
    assert events[0] == ("Downloading Ollama...", 0)
    assert ("Downloading Ollama... 25%", 25) in events
    assert events[-1] == ("Downloading Ollama... 100%", 100)
    assert session.urls == [resolve_platform("darwin").download_url]
    if os.name != "nt":
        assert os.stat(binary).st_mode & 0o777 == 0o755


def test_install_without_content_length_is_indeterminate(tmp_path):
    session = _FakeSession(_FakeDownload(b"binary-bytes" * 10, with_length=False))
    installer = BinaryInstaller(InstallLayout(tmp_path, resolve_platform("darwin")), session=session)
    events = []
    assert installer.install(lambda m, p: events.append((m, p)))
    assert events == [("Downloading Ollama...", 0), ("Downloading Ollama...", -1)]


def test_install_zip_extracts_into_bin(tmp_path):
    archive = _zip_bytes({"ollama.exe": b"MZ...", "lib/ollama/ggml.dll": b"dll"})
    installer = BinaryInstaller(
        InstallLayout(tmp_path, resolve_platform("win32")),
        session=_FakeSession(_FakeDownload(archive)),
    )
    events = []
    assert installer.install(lambda m, p: events.append((m, p))) is True
    assert (tmp_path / "bin" / "ollama.exe").read_bytes() == b"MZ..."
    assert (tmp_path / "bin" / "lib" / "ollama" / "ggml.dll").exists()
    assert not (tmp_path / "ollama-download.tmp").exists()
    assert ("Extracting...", 100) in events


def test_install_zip_rejects_path_traversal(tmp_path):
    archive = _zip_bytes({"../evil.exe": b"x"})
    installer = BinaryInstaller(
        InstallLayout(tmp_path / "data", resolve_platform("win32")),
        session=_FakeSession(_FakeDownload(archive)),
    )
    with pytest.raises(InstallError, match="outside"):
        installer.install()
    assert not (tmp_path / "evil.exe").exists()


def test_install_zip_without_executable_returns_false(tmp_path):
    archive = _zip_bytes({"README.txt": b"nothing here"})
    installer = BinaryInstaller(
        InstallLayout(tmp_path, resolve_platform("win32")),
        session=_FakeSession(_FakeDownload(archive)),
    )
    assert installer.install() is False


def test_install_tgz_runs_tar_into_data_dir(tmp_path):
    archive = _tgz_bytes({"bin/ollama": b"#!elf", "lib/ollama/libggml.so": b"so"})
    calls = []
    installer = BinaryInstaller(
        InstallLayout(tmp_path, resolve_platform("linux")),
        session=_FakeSession(_FakeDownload(archive)),
        run=_tar_runner(calls),
    )

    assert installer.install() is True

    args = calls[0]
    assert args[1] == "xzf"
    assert args[2] == str(tmp_path / "ollama-download.tmp")
    assert args[3:] == ["-C", str(tmp_path.resolve())]
    assert (tmp_path / "bin" / "ollama").read_bytes() == b"#!elf"
    assert (tmp_path / "lib" / "ollama" / "libggml.so").exists()
    assert not (tmp_path / "ollama-download.tmp").exists()


def test_install_tar_failure_raises(tmp_path):
    installer = BinaryInstaller(
        InstallLayout(tmp_path, resolve_platform("linux")),
        session=_FakeSession(_FakeDownload(b"not a tarball")),
        run=_tar_runner([], returncode=2),
    )
    with pytest.raises(InstallError, match="tar exited with 2"):
        installer.install()


def test_install_download_failures_raise(tmp_path):
    layout = InstallLayout(tmp_path, resolve_platform("darwin"))

    http_error = requests.exceptions.HTTPError("404 Client Error")
    with pytest.raises(InstallError, match="Download failed"):
        BinaryInstaller(layout, session=_FakeSession(_FakeDownload(status_error=http_error))).install()

    with pytest.raises(InstallError):
        BinaryInstaller(layout, session=_FakeSession(error=requests.exceptions.ConnectionError("offline"))).install()

    assert not layout.binary_path.exists()


def test_broken_raw_download_leaves_nothing_installed(tmp_path):
    payload = b"\x7fELF" + b"x" * 96
    layout = InstallLayout(tmp_path, resolve_platform("darwin"))
    installer = BinaryInstaller(
        layout,
        session=_FakeSession(_FakeDownload(payload, chunk=10, break_after=10, total=len(payload))),
    )

    with pytest.raises(InstallError, match="Download failed"):
        installer.install()

    assert not layout.binary_path.exists()
    assert installer.is_installed() is False
    assert not layout.download_path.exists()


def test_raw_download_is_moved_into_place(tmp_path):
    layout = InstallLayout(tmp_path, resolve_platform("darwin"))
    installer = BinaryInstaller(layout, session=_FakeSession(_FakeDownload(b"binary")))
    assert installer.install() is True
    assert layout.binary_path.read_bytes() == b"binary"
    assert not layout.download_path.exists()


def test_failed_extraction_removes_archive(tmp_path):
    layout = InstallLayout(tmp_path, resolve_platform("win32"))
    installer = BinaryInstaller(layout, session=_FakeSession(_FakeDownload(b"this is not a zip")))
    with pytest.raises(InstallError, match="Zip extraction failed"):
        installer.install()
    assert not layout.download_path.exists()
    assert installer.is_installed() is False


def test_broken_archive_download_removes_partial_file(tmp_path):
    layout = InstallLayout(tmp_path, resolve_platform("linux"))
    calls = []
    installer = BinaryInstaller(
        layout,
        session=_FakeSession(_FakeDownload(b"z" * 50, chunk=10, break_after=20)),
        run=_tar_runner(calls),
    )
    with pytest.raises(InstallError):
        installer.install()
    assert calls == []
    assert not layout.download_path.exists()


def test_unwritable_bin_dir_is_install_error(tmp_path):
    (tmp_path / "bin").write_text("a file where a directory belongs")
    installer = BinaryInstaller(
        InstallLayout(tmp_path, resolve_platform("darwin")),
        session=_FakeSession(_FakeDownload(b"binary")),
    )
    with pytest.raises(InstallError, match="Cannot create"):
        installer.install()
