"""Loopback HTTPS listener and its foreground/background lifecycle.

A `MediaServer` owns one supervisor thread. The supervisor binds the TLS
listener, serves until shut down, and restarts after unexpected failures. The
first successfully bound port is remembered and reused on every restart so
URLs already handed to the client keep working; only a failed bind resets it
to an ephemeral port.
"""

from __future__ import annotations

import logging
import socket
import ssl
import threading
from socketserver import ThreadingMixIn
from typing import Any
from wsgiref.simple_server import WSGIRequestHandler, WSGIServer, make_server

from chatmedia import certs
from chatmedia.config import ServerConfig
from chatmedia.handlers import build_app
from chatmedia.store import MessageStore

_log = logging.getLogger("chatmedia")


# ── TLS WSGI server ────────────────────────────────────────────────


class _QuietHandler(WSGIRequestHandler):
    def log_message(self, format: str, *args: Any) -> None:
        _log.debug("%s - %s", self.address_string(), format % args)


class TLSWSGIServer(ThreadingMixIn, WSGIServer):
    """Threaded WSGI server doing the TLS handshake on the worker thread.

    The listening socket stays plain; each accepted connection is wrapped in
    `finish_request`, so a slow or broken handshake never blocks `accept`.
    """

    daemon_threads = False
    ssl_context: ssl.SSLContext
    request_timeout: float | None = None

    def setup_environ(self) -> None:
        super().setup_environ()
        self.base_environ["HTTPS"] = "on"

    def finish_request(self, request: socket.socket, client_address: Any) -> None:
        # Bounds the handshake and every read; server_close() joins workers.
        request.settimeout(self.request_timeout)
        conn = self.ssl_context.wrap_socket(request, server_side=True)
        try:
            super().finish_request(conn, client_address)
        finally:
            conn.close()

    def handle_error(self, request: Any, client_address: Any) -> None:
        _log.debug("connection from %s failed", client_address, exc_info=True)


# ── Lifecycle ──────────────────────────────────────────────────────


class MediaServer:
    def __init__(
        self,
        store: MessageStore,
        config: ServerConfig | None = None,
        provider: certs.CertificateProvider | None = None,
    ) -> None:
        self.store = store
        self.config = config or ServerConfig()
        self.port = self.config.port
        self.running = False

        # Certificate errors are fatal to the server and surface here.
        self.cert = (provider or certs.default_provider()).ensure_certificate()

        self._lock = threading.RLock()
        self._running_event = threading.Event()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._httpd: TLSWSGIServer | None = None
        self._started = False

    # -- public API ---------------------------------------------------

    def start(self) -> None:
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                return
            self._stop_event.clear()
            self._started = True
            app = build_app(self.store)
            self._thread = threading.Thread(
                target=self._supervise, args=(app,), name="chatmedia-listener", daemon=True
            )
            self._thread.start()

    def stop(self) -> None:
        """Gracefully shut down; in-flight requests are allowed to finish."""
        with self._lock:
            thread = self._thread
            if thread is None:
                return
            self._stop_event.set()
            httpd = self._httpd if self.running else None

        # Outside the lock: the supervisor takes it while winding down.
        if httpd is not None:
            httpd.shutdown()
        if thread is not threading.current_thread():
            thread.join()
        with self._lock:
            if self._thread is thread:
                self._thread = None

    def to_foreground(self) -> None:
        if not self.running and self._started:
            self.start()

    def to_background(self) -> None:
        if self.running:
            try:
                self.stop()
            except Exception:
                _log.exception("server stop failed during background transition")

    def wait_until_running(self, timeout: float | None = None) -> bool:
        return self._running_event.wait(timeout)

    def url(self, path: str = "/") -> str:
        return f"https://{self.config.host}:{self.port}{path}"

    # -- supervisor ---------------------------------------------------

    def _make_httpd(self, app: Any) -> TLSWSGIServer:
        ctx = self.cert.server_context()
        httpd = make_server(
            self.config.host,
            self.port,
            app,
            server_class=TLSWSGIServer,
            handler_class=_QuietHandler,
        )
        httpd.ssl_context = ctx
        httpd.request_timeout = self.config.request_timeout
        return httpd

    def _backoff(self, attempt: int) -> float:
        delay = self.config.retry_delay * 2 ** (attempt - 1)
        return min(delay, self.config.max_retry_delay)

    def _supervise(self, app: Any) -> None:
        failures = 0
        while not self._stop_event.is_set():
            try:
                httpd = self._make_httpd(app)
            except OSError as e:
                failures += 1
                failed_port = self.port
                with self._lock:
                    self.port = 0
                if failures >= self.config.max_bind_attempts:
                    _log.error("server start on port %d failed %d times, giving up: %s",
                               failed_port, failures, e)
                    return
                delay = self._backoff(failures)
                _log.error("failed to start server on port %d, retrying in %.2fs: %s",
                           failed_port, delay, e)
                self._stop_event.wait(delay)
                continue

            failures = 0
            with self._lock:
                if self._stop_event.is_set():
                    httpd.server_close()
                    return
                self.port = httpd.server_address[1]
                self._httpd = httpd
                self.running = True
                self._running_event.set()
            _log.info("serving on %s", self.url())

            try:
                httpd.serve_forever()
            except Exception:
                _log.exception("server failed unexpectedly, restarting on port %d", self.port)
            else:
                _log.info("server on port %d shut down", self.port)
            finally:
                with self._lock:
                    self.running = False
                    self._running_event.clear()
                httpd.server_close()
