"""A JSON-RPC 2.0 client that runs over a pluggable message transport."""

from __future__ import annotations

import abc
import concurrent.futures
import itertools
import json
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

_CLOSE_WAIT_SECONDS = 5.0


class JsonRpcError(Exception):
    """Base error for JSON-RPC failures."""


class ServerError(JsonRpcError):
    """The server answered a call with an error object."""

    def __init__(self, code: int, message: str, data: Any = None) -> None:
        super().__init__(f"server error (code: {code}): {message}")
        self.code = code
        self.message = message
        self.data = data


class ClientClosedError(JsonRpcError):
    """The client is closed or closing."""


@dataclass
class ErrorObject:
    """A JSON-RPC 2.0 error object."""

    code: int = 0
    message: str = ""
    data: Any = None


@dataclass
class Response:
    """A JSON-RPC 2.0 response; ``result`` is None when absent or null."""

    jsonrpc: str = ""
    id: Any = None
    result: Any = None
    error: Optional[ErrorObject] = None


class Transport(abc.ABC):
    """Sends and receives whole JSON-RPC message payloads.

    A transport may also offer ``close()``; the client calls it when closing.
    """

    @abc.abstractmethod
    def send(self, payload: bytes) -> None:
        """Send one complete message."""

    @abc.abstractmethod
    def receive(self) -> bytes:
        """Block until the next complete message arrives and return it."""


def format_request(method: str, params: Any = None, request_id: Any = None) -> bytes:
    """Encode a request; ``params`` and ``id`` are left out when None."""
    request: dict[str, Any] = {"jsonrpc": "2.0", "method": method}
    if params is not None:
        request["params"] = params
    if request_id is not None:
        request["id"] = request_id
    return json.dumps(request, separators=(",", ":")).encode("utf-8")


def _decode_error(value: Any) -> Optional[ErrorObject]:
    if value is None:
        return None
    if not isinstance(value, dict):
        raise ValueError("error field is not an object")
    code = value.get("code", 0)
    message = value.get("message", "")
    if isinstance(code, bool) or not isinstance(code, int):
        raise ValueError("error code is not an integer")
    if not isinstance(message, str):
        raise ValueError("error message is not a string")
    return ErrorObject(code=code, message=message, data=value.get("data"))


def _decode_object(payload: bytes | str) -> dict[str, Any]:
    message = json.loads(payload)
    if not isinstance(message, dict):
        raise ValueError("message is not a JSON object")
    jsonrpc = message.get("jsonrpc", "")
    if jsonrpc is None:
        jsonrpc = ""
    if not isinstance(jsonrpc, str):
        raise ValueError("jsonrpc field is not a string")
    message["jsonrpc"] = jsonrpc
    return message


def parse_response(payload: bytes | str) -> Response:
    """Decode a response and check that it carries exactly one of result and error."""
    try:
        message = _decode_object(payload)
        error = _decode_error(message.get("error"))
    except ValueError as exc:
        raise JsonRpcError(f"jsonrpc: invalid response: {exc}") from exc

    response_id = message.get("id")
    if message["jsonrpc"] not in ("", "2.0"):
        return Response(
            jsonrpc=message["jsonrpc"],
            id=response_id,
            error=ErrorObject(code=-32600, message="Invalid JSON-RPC version"),
        )

    result = message.get("result")
    if error is not None and result is not None:
        raise JsonRpcError("jsonrpc: response contains both result and error fields")
    if error is None and result is None:
        raise JsonRpcError("jsonrpc: response contains neither result nor error field")
    return Response(jsonrpc=message["jsonrpc"], id=response_id, result=result, error=error)


def _normalize_id(value: Any) -> Any:
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


class Client:
    """A JSON-RPC 2.0 client; run :meth:`listen` in a thread to receive messages."""

    def __init__(self, transport: Transport) -> None:
        self._transport = transport
        self._ids = itertools.count(1)
        self._id_lock = threading.Lock()
        self._handlers: dict[str, Callable[[Any], None]] = {}
        self._handlers_lock = threading.Lock()
        self._pending: dict[Any, concurrent.futures.Future] = {}
        self._pending_lock = threading.Lock()
        self._closed = threading.Event()
        self._listener_stopped = threading.Event()
        self._listener_stopped.set()

    def on_notification(self, method: str, handler: Callable[[Any], None]) -> None:
        """Register ``handler(params)`` for a server notification, replacing any earlier one."""
        with self._handlers_lock:
            self._handlers[method] = handler

    def call(self, method: str, params: Any = None, timeout: Optional[float] = None) -> Any:
        """Send a request and wait for its result."""
        with self._id_lock:
            request_id = next(self._ids)
        payload = format_request(method, params, request_id)

        future: concurrent.futures.Future = concurrent.futures.Future()
        with self._pending_lock:
            if self._closed.is_set():
                raise ClientClosedError("jsonrpc: client is closed")
            self._pending[request_id] = future

        try:
            try:
                self._transport.send(payload)
            except Exception as exc:
                raise JsonRpcError(f"jsonrpc: transport failed to send request: {exc}") from exc
            try:
                response = future.result(timeout=timeout)
            except concurrent.futures.TimeoutError:
                raise TimeoutError(
                    f"jsonrpc: call for ID {request_id} timed out"
                ) from None
        finally:
            with self._pending_lock:
                self._pending.pop(request_id, None)

        if response.error is not None:
            raise ServerError(response.error.code, response.error.message, response.error.data)
        return response.result

    def notify(self, method: str, params: Any = None) -> None:
        """Send a notification, which has no ID and gets no response."""
        payload = format_request(method, params)
        try:
            self._transport.send(payload)
        except Exception as exc:
            raise JsonRpcError(f"jsonrpc: transport error during notify: {exc}") from exc

    def listen(self) -> None:
        """Receive and dispatch messages until the client closes.

        Raises :class:`JsonRpcError` if the transport fails while the client is open.
        """
        self._listener_stopped.clear()
        try:
            while not self._closed.is_set():
                try:
                    payload = self._transport.receive()
                except Exception as exc:
                    if self._closed.is_set():
                        self._fail_pending(ClientClosedError("jsonrpc: client is closing"))
                        return
                    logger.error("jsonrpc: error receiving message from transport: %s", exc)
                    self._fail_pending(JsonRpcError(f"jsonrpc: call aborted: {exc}"))
                    raise JsonRpcError(f"jsonrpc: transport receive error: {exc}") from exc
                if payload:
                    self._dispatch(payload)
            self._fail_pending(ClientClosedError("jsonrpc: client is closing"))
        finally:
            self._listener_stopped.set()

    def close(self) -> None:
        """Stop the listener, fail pending calls and close the transport."""
        if self._closed.is_set():
            return
        self._closed.set()
        self._fail_pending(ClientClosedError("jsonrpc: client is closing"))

        close_transport = getattr(self._transport, "close", None)
        error: Optional[Exception] = None
        if callable(close_transport):
            try:
                close_transport()
            except Exception as exc:
                logger.error("jsonrpc: error closing transport: %s", exc)
                error = exc
        self._listener_stopped.wait(_CLOSE_WAIT_SECONDS)
        if error is not None:
            raise JsonRpcError(f"jsonrpc: error closing transport: {error}") from error

    def _fail_pending(self, reason: Exception) -> None:
        with self._pending_lock:
            for future in self._pending.values():
                if not future.done():
                    future.set_exception(reason)
            self._pending.clear()

    def _dispatch(self, payload: bytes) -> None:
        try:
            message = _decode_object(payload)
            error = _decode_error(message.get("error"))
        except ValueError as exc:
            logger.warning("jsonrpc: error unmarshalling incoming message: %s: %r", exc, payload)
            return

        method = message.get("method")
        if method:
            with self._handlers_lock:
                handler = self._handlers.get(method)
            if handler is None:
                logger.warning("jsonrpc: no handler for notification method '%s'", method)
                return
            threading.Thread(
                target=self._run_handler,
                args=(method, handler, message.get("params")),
                daemon=True,
            ).start()
            return

        response_id = message.get("id")
        if response_id is None:
            logger.warning("jsonrpc: received ill-formed message: %r", payload)
            return

        result = message.get("result")
        if error is not None and result is not None:
            logger.warning("jsonrpc: response with ID %r has both result and error", response_id)
            return
        if error is None and result is None and message["jsonrpc"] == "2.0":
            logger.warning("jsonrpc: response with ID %r has neither result nor error", response_id)
            return

        key = _normalize_id(response_id)
        response = Response(jsonrpc=message["jsonrpc"], id=response_id, result=result, error=error)
        with self._pending_lock:
            future = self._pending.get(key)
            if future is not None and not future.done():
                future.set_result(response)
                return
        logger.warning("jsonrpc: received response for unknown or already handled ID: %r", key)

    @staticmethod
    def _run_handler(method: str, handler: Callable[[Any], None], params: Any) -> None:
        try:
            handler(params)
        except Exception as exc:
            logger.error("jsonrpc: notification handler for method '%s' failed: %s", method, exc)