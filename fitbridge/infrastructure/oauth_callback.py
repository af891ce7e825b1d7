"""Local HTTP listener that catches the OAuth2 redirect.

The listener serves on a background thread. The thread that started the flow
waits on a single-use :class:`concurrent.futures.Future` which the request
handler completes with the first valid authorization code.
"""

from __future__ import annotations

import errno
import threading
from concurrent.futures import Future, InvalidStateError
from concurrent.futures import TimeoutError as FutureTimeoutError
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Optional
from urllib.parse import parse_qs, urlsplit

from fitbridge.application.exceptions import (
    AuthFlowError,
    AuthorizationDeniedError,
    AuthTimeoutError,
    PortInUseError,
)
from fitbridge.infrastructure.log_utils import log_message

CALLBACK_PATH = "/callback"
SUCCESS_MESSAGE = "Authorized! You can close this tab/window now."
_ADDR_IN_USE = tuple(code for code in (errno.EADDRINUSE, getattr(errno, "WSAEADDRINUSE", None)) if code is not None)


class _CallbackHandler(BaseHTTPRequestHandler):
    server: "_CallbackHTTPServer"

    def do_GET(self) -> None:  # noqa: N802 - http.server naming
        parts = urlsplit(self.path)
        if parts.path != self.server.callback.callback_path:
            self._reply(404, "Not found")
            return

        params = {key: values[0] for key, values in parse_qs(parts.query).items() if values}
        status, body = self.server.callback.handle(params)
        self._reply(status, body)

    def _reply(self, status: int, body: str) -> None:
        payload = body.encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "text/plain; charset=utf-8")
        self.send_header("Content-Length", str(len(payload)))
        self.end_headers()
        self.wfile.write(payload)

    def log_message(self, format: str, *args) -> None:  # noqa: A002 - signature from http.server
        log_message(f"callback {self.address_string()} {format % args}", "DEBUG", tag="FLOW")


class _CallbackHTTPServer(ThreadingHTTPServer):
    daemon_threads = True
    # A second flow on the same port must fail to bind, not share the socket.
    allow_reuse_port = False

    def __init__(self, address, callback: "CallbackServer") -> None:
        self.callback = callback
        super().__init__(address, _CallbackHandler)


class CallbackServer:
    """One authorization attempt's redirect listener."""

    def __init__(
        self,
        host: str,
        port: int,
        *,
        expected_state: Optional[str] = None,
        callback_path: str = CALLBACK_PATH,
    ) -> None:
        self.host = host
        self.port = port
        self.callback_path = callback_path
        self.expected_state = expected_state
        self._result: Future = Future()
        self._httpd: Optional[_CallbackHTTPServer] = None
        self._thread: Optional[threading.Thread] = None
        self._shutdown_lock = threading.Lock()

    @property
    def bound_port(self) -> int:
        """The port actually bound (differs from ``port`` when it was 0)."""
        if self._httpd is None:
            return self.port
        return self._httpd.server_address[1]

    @property
    def redirect_uri(self) -> str:
        return f"http://{self.host}:{self.bound_port}{self.callback_path}"

    def start(self) -> None:
        try:
            self._httpd = _CallbackHTTPServer((self.host, self.port), self)
        except OSError as exc:
            if exc.errno in _ADDR_IN_USE:
                raise PortInUseError(
                    f"Port {self.port} is already in use; another authorization may be running."
                ) from exc
            raise AuthFlowError(f"Could not start local auth server on {self.host}:{self.port}: {exc}") from exc

        self._thread = threading.Thread(
            target=self._httpd.serve_forever,
            name=f"oauth-callback-{self.bound_port}",
            daemon=True,
        )
        self._thread.start()
        log_message(f"Listening for the OAuth redirect on {self.redirect_uri}", "DEBUG")

    def handle(self, params: dict) -> tuple[int, str]:
        """Decide the response for one callback hit and complete the future if it carries a code."""
        if self._result.done():
            return 409, "Authorization already completed for this session."

        # Nothing without the flow's state may settle the flow, not even an error.
        if self.expected_state is not None and params.get("state") != self.expected_state:
            log_message("Ignoring OAuth callback with a missing or mismatched state value.", "WARN")
            return 400, "State mismatch"

        error = params.get("error")
        if error:
            description = params.get("error_description") or error
            self._complete(exception=AuthorizationDeniedError(f"Provider denied authorization: {description}"))
            return 400, f"Authorization failed: {description}"

        code = params.get("code")
        if not code:
            return 400, "Code not found"

        if not self._complete(result=code):
            return 409, "Authorization already completed for this session."
        return 200, SUCCESS_MESSAGE

    def _complete(self, *, result: Optional[str] = None, exception: Optional[BaseException] = None) -> bool:
        # Handler threads race here; only the first completion counts.
        try:
            if exception is not None:
                self._result.set_exception(exception)
            else:
                self._result.set_result(result)
        except InvalidStateError:
            return False
        return True

    def wait_for_code(self, timeout: Optional[float] = None) -> str:
        """Block until a code arrives, the provider reports an error, or ``timeout`` passes."""
        try:
            return self._result.result(timeout=timeout)
        except FutureTimeoutError:
            if not self._result.cancel():
                # A callback completed the future after the wait gave up.
                return self._result.result()
            raise AuthTimeoutError(
                f"No authorization code received within {timeout:.0f}s. "
                "Re-run the command and complete the sign-in in your browser."
            ) from None

    def schedule_shutdown(self, delay: float) -> threading.Timer:
        """Stop the listener after ``delay`` seconds without blocking the caller."""
        timer = threading.Timer(delay, self.shutdown)
        timer.daemon = True
        timer.start()
        return timer

    def shutdown(self) -> None:
        with self._shutdown_lock:
            httpd, self._httpd = self._httpd, None
        if httpd is None:
            return
        httpd.shutdown()
        httpd.server_close()
        log_message("Local auth server stopped.", "DEBUG")


__all__ = ["CallbackServer", "CALLBACK_PATH", "SUCCESS_MESSAGE"]
