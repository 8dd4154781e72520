"""
Ollama runtime client - Infrastructure implementation of the RuntimeAPI protocol.
Handles communication with a locally running Ollama server.
"""

from __future__ import annotations
import logging
import threading
import time
from typing import List, Dict, Any, Optional, Callable, Iterator

import httpx
import ollama
import pydantic
import requests
from ollama import Client

from ...domain.errors import (
    LocalAIError,
    ConnectivityError,
    RuntimeTimeoutError,
    ProtocolError,
    CancellationError,
    GenerationInProgressError,
)
from ...domain.models.runtime import ModelDescriptor, ProbeResult, PullProgressCallback
from ...domain.services.stream_decoder import ChatStreamParser

DEFAULT_HOST = "http://127.0.0.1:11434"

# Raised by the ollama SDK for list/pull; it reports refused connections as ConnectionError
_SDK_ERRORS = (ollama.ResponseError, httpx.HTTPError, ConnectionError, pydantic.ValidationError)

# Raised while reading a streamed body, including after abort() closed it
_TRANSPORT_ERRORS = (requests.exceptions.RequestException, OSError, ValueError)


class _InflightRequest:
    """Cancellation handle for the one chat request that may be streaming."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._cancelled = threading.Event()
        self._response: Optional[requests.Response] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def attach(self, response: requests.Response) -> None:
        with self._lock:
            self._response = response
            if not self._cancelled.is_set():
                return
        response.close()
        raise CancellationError("Chat request aborted")

    def cancel(self) -> None:
        with self._lock:
            self._cancelled.set()
            response = self._response
        if response is not None:
            # Unblocks the reader thread; iteration ends or raises
            response.close()


class OllamaRuntimeClient:
    """HTTP client for the local runtime: liveness, models, streaming chat."""

    def __init__(
        self,
        host: str = DEFAULT_HOST,
        health_timeout: float = 3.0,
        list_timeout: float = 5.0,
        connect_timeout: float = 5.0,
        pull_timeout: float = 600.0,
        chat_timeout: float = 300.0,
        session: Optional[requests.Session] = None,
        sdk_factory: Optional[Callable[[float], Any]] = None,
        clock: Callable[[], float] = time.monotonic,
        logger: Optional[logging.Logger] = None
    ):
        self._host = host.rstrip("/")
        self._health_timeout = health_timeout
        self._list_timeout = list_timeout
        self._connect_timeout = connect_timeout
        self._pull_timeout = pull_timeout
        self._chat_timeout = chat_timeout
        self._session = session or requests.Session()
        self._sdk_factory = sdk_factory or self._default_sdk_factory
        self._sdk_clients: Dict[float, Any] = {}
        self._clock = clock
        self._logger = logger or logging.getLogger(__name__)

        self._lock = threading.Lock()
        self._inflight: Optional[_InflightRequest] = None

    @classmethod
    def from_settings(cls, runtime_settings: Any, **kwargs: Any) -> OllamaRuntimeClient:
        """Build a client from ``RuntimeSettings``."""
        return cls(
            host=runtime_settings.host,
            health_timeout=runtime_settings.health_timeout_s,
            list_timeout=runtime_settings.list_timeout_s,
            connect_timeout=runtime_settings.connect_timeout_s,
            pull_timeout=runtime_settings.pull_timeout_s,
            chat_timeout=runtime_settings.chat_timeout_s,
            **kwargs
        )

    @property
    def host(self) -> str:
        return self._host

    @property
    def busy(self) -> bool:
        """True while a chat request is in flight."""
        with self._lock:
            return self._inflight is not None

    # ------------------
    # Liveness
    # ------------------
    def probe(self) -> ProbeResult:
        """GET the server root. Never raises."""
        url = f"{self._host}/"
        try:
            response = self._session.get(url, timeout=self._health_timeout)
        except requests.exceptions.Timeout as e:
            self._logger.debug(f"Runtime probe timed out: {e}")
            return ProbeResult(False, RuntimeTimeoutError(f"No answer from {url} within {self._health_timeout}s"))
        except requests.exceptions.RequestException as e:
            self._logger.debug(f"Runtime probe failed: {e}")
            return ProbeResult(False, ConnectivityError(f"Cannot reach {url}: {e}"))

        if 200 <= response.status_code < 300:
            return ProbeResult(True)
        self._logger.debug(f"Runtime probe got status {response.status_code}")
        return ProbeResult(False, ProtocolError(f"Unexpected status {response.status_code}", response.status_code))

    def is_running(self) -> bool:
        return self.probe().running

    # ------------------
    # Models
    # ------------------
    def fetch_models(self) -> List[ModelDescriptor]:
        """List local models, raising typed errors on failure."""
        try:
            response = self._sdk(self._list_timeout).list()
        except _SDK_ERRORS as e:
            raise self._translate_sdk_error(e, "list models") from e

        if isinstance(response, dict):
            raw_models = response.get("models") or []
        else:
            raw_models = getattr(response, "models", None) or []
        try:
            return [ModelDescriptor.from_api(raw) for raw in raw_models]
        except (TypeError, ValueError) as e:
            raise ProtocolError(f"Malformed model list: {e}") from e

    def list_models(self) -> List[ModelDescriptor]:
        """List local models; any failure yields an empty list."""
        try:
            return self.fetch_models()
        except LocalAIError as e:
            self._logger.debug(f"list_models failed: {e}")
            return []

    def has_model(self, name: str) -> bool:
        return any(model.matches(name) for model in self.list_models())

    def pull_model(self, name: str, on_progress: Optional[PullProgressCallback] = None) -> bool:
        """Pull ``name`` in one non-streaming request."""
        if on_progress:
            on_progress("Starting pull...", 0, 0)

        self._logger.info(f"Pulling model {name}")
        try:
            result = self._sdk(self._pull_timeout).pull(name, stream=False)
        except _SDK_ERRORS as e:
            raise self._translate_sdk_error(e, f"pull {name}") from e

        error = result.get("error") if isinstance(result, dict) else getattr(result, "error", None)
        if error:
            self._logger.warning(f"Pull of {name} failed: {error}")
            raise ProtocolError(str(error))

        if on_progress:
            on_progress("Done", 100, 100)
        self._logger.info(f"Model {name} pulled")
        return True

    # ------------------
    # Chat
    # ------------------
    def chat(
        self,
        model: str,
        messages: List[Dict[str, Any]],
        on_token: Optional[Callable[[str], None]] = None
    ) -> str:
        """Stream a chat reply from ``/api/chat`` and return the full text."""
        request = _InflightRequest()
        with self._lock:
            if self._inflight is not None:
                raise GenerationInProgressError("A chat request is already in flight")
            self._inflight = request
        try:
            return self._stream_chat(request, model, messages, on_token)
        finally:
            with self._lock:
                if self._inflight is request:
                    self._inflight = None

    def abort(self) -> bool:
        """Cancel the in-flight chat call. Returns False when there is none."""
        with self._lock:
            request = self._inflight
        if request is None:
            return False
        self._logger.info("Aborting in-flight chat request")
        request.cancel()
        return True

    def close(self) -> None:
        self.abort()
        self._session.close()
        for sdk in self._sdk_clients.values():
            inner = getattr(sdk, "_client", None)
            if inner is not None and hasattr(inner, "close"):
                inner.close()
        self._sdk_clients.clear()

    def _stream_chat(
        self,
        request: _InflightRequest,
        model: str,
        messages: List[Dict[str, Any]],
        on_token: Optional[Callable[[str], None]]
    ) -> str:
        url = f"{self._host}/api/chat"
        payload = {"model": model, "messages": messages, "stream": True}
        deadline = self._clock() + self._chat_timeout
        parser = ChatStreamParser(on_token=on_token, logger=self._logger)

        try:
            response = self._session.post(
                url,
                json=payload,
                stream=True,
                timeout=(self._connect_timeout, self._chat_timeout),
            )
        except requests.exceptions.RequestException as e:
            raise self._translate_transport_error(e, request, deadline) from e

        request.attach(response)
        with response:
            if not 200 <= response.status_code < 300:
                raise ProtocolError(
                    f"Ollama chat error {response.status_code}: {self._error_text(response)}",
                    response.status_code,
                )
            for chunk in self._iter_chunks(response, request, deadline):
                parser.feed(chunk)

        if request.cancelled:
            raise CancellationError("Chat request aborted")
        reply = parser.finish()
        self._logger.debug(f"Chat finished: {parser.records_seen} records, {len(reply)} chars")
        return reply

    def _iter_chunks(
        self,
        response: requests.Response,
        request: _InflightRequest,
        deadline: float
    ) -> Iterator[bytes]:
        """Yield body chunks as they arrive, mapping transport failures."""
        chunks = response.iter_content(chunk_size=None)
        while not request.cancelled:
            try:
                chunk = next(chunks)
            except StopIteration:
                return
            except _TRANSPORT_ERRORS as e:
                raise self._translate_transport_error(e, request, deadline) from e
            if self._clock() > deadline:
                raise RuntimeTimeoutError(f"Chat did not finish within {self._chat_timeout}s")
            yield chunk

    # ------------------
    # Helpers
    # ------------------
    def _default_sdk_factory(self, timeout: float) -> Client:
        return Client(host=self._host, timeout=httpx.Timeout(timeout, connect=self._connect_timeout))

    def _sdk(self, timeout: float) -> Any:
        if timeout not in self._sdk_clients:
            self._sdk_clients[timeout] = self._sdk_factory(timeout)
        return self._sdk_clients[timeout]

    def _translate_transport_error(
        self,
        error: Exception,
        request: _InflightRequest,
        deadline: float
    ) -> LocalAIError:
        if request.cancelled:
            return CancellationError("Chat request aborted")
        if isinstance(error, requests.exceptions.Timeout) or self._clock() >= deadline:
            self._logger.debug(f"Chat timed out: {error}")
            return RuntimeTimeoutError(f"Ollama request timed out: {error}")
        self._logger.debug(f"Chat transport failure: {error}")
        return ConnectivityError(f"Network error connecting to Ollama: {error}")

    @staticmethod
    def _translate_sdk_error(error: Exception, action: str) -> LocalAIError:
        if isinstance(error, ollama.ResponseError):
            return ProtocolError(f"{action} failed: {error.error}", getattr(error, "status_code", None))
        if isinstance(error, httpx.TimeoutException):
            return RuntimeTimeoutError(f"{action} timed out: {error}")
        if isinstance(error, (httpx.HTTPError, ConnectionError)):
            return ConnectivityError(f"{action} failed: {error}")
        return ProtocolError(f"{action} returned a malformed response: {error}")

    @staticmethod
    def _error_text(response: requests.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.reason or ""
        if isinstance(body, dict) and body.get("error"):
            return str(body["error"])
        return response.reason or ""
