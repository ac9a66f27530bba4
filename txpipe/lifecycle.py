"""Listener binding and graceful shutdown."""

import signal
import threading
import time

import uvicorn
from starlette.types import ASGIApp

from txpipe.core.logging import get_logger
from txpipe.core.settings import TlsConfig
from txpipe.exceptions import ServiceBindError, ShutdownStepTimeout

BIND_HOST = "0.0.0.0"  # nosec B104 - the service listens on all interfaces
SHUTDOWN_STEP_TIMEOUT_SEC = 30.0
BIND_TIMEOUT_SEC = 30.0

logger = get_logger(__name__)


class ServiceServer(uvicorn.Server):
    """uvicorn server that signals once its listeners are closed and drained."""

    def __init__(self, config: uvicorn.Config):
        super().__init__(config)
        self.unbound = threading.Event()
        self.exit_code: int | str | None = None

    def serve_forever(self) -> None:
        """Thread target. uvicorn exits on startup failures; record the code instead."""
        try:
            self.run()
        except SystemExit as exc:
            self.exit_code = exc.code
            logger.error("Service exited", exit_code=exc.code)

    async def shutdown(self, sockets=None) -> None:
        try:
            await super().shutdown(sockets=sockets)
        finally:
            self.unbound.set()


class ServiceBinding:
    """A bound listener and the thread serving it.

    ``shutdown`` runs at most once, however many times and from however many
    threads it is called.
    """

    def __init__(self, server: ServiceServer, thread: threading.Thread):
        self.server = server
        self.thread = thread
        self.terminated = threading.Event()
        self._shutdown_lock = threading.Lock()
        self._shutdown_started = False
        self._hook_installed = False

    @property
    def port(self) -> int | None:
        """Port actually bound, once the server has started."""
        for server in getattr(self.server, "servers", []) or []:
            for sock in server.sockets:
                return sock.getsockname()[1]
        return None

    def shutdown(self, timeout: float = SHUTDOWN_STEP_TIMEOUT_SEC) -> bool:
        """Unbind, terminate and wait for termination. Returns False if already shutting down."""
        with self._shutdown_lock:
            if self._shutdown_started:
                return False
            self._shutdown_started = True

        logger.info("Service shutdown started")
        for step, action in (
            ("unbind", self._unbind),
            ("terminate", self._terminate),
            ("await_termination", self._await_termination),
        ):
            logger.debug("Shutdown step", step=step)
            try:
                action(timeout)
            except ShutdownStepTimeout as exc:
                logger.warning("Shutdown step timed out", step=exc.step, timeout_sec=exc.timeout)
        self.terminated.set()
        logger.info("Service shutdown finished")
        return True

    def wait(self, poll_interval: float = 0.5) -> None:
        """Block until the serving thread ends."""
        while self.thread.is_alive():
            self.thread.join(poll_interval)

    def _unbind(self, timeout: float) -> None:
        self.server.should_exit = True
        if not self.server.unbound.wait(timeout):
            raise ShutdownStepTimeout("unbind", timeout)

    def _terminate(self, timeout: float) -> None:
        self.server.force_exit = True

    def _await_termination(self, timeout: float) -> None:
        self.thread.join(timeout)
        if self.thread.is_alive():
            raise ShutdownStepTimeout("await_termination", timeout)


def add_shutdown_hook(
    binding: ServiceBinding,
    signals: tuple[signal.Signals, ...] = (signal.SIGTERM, signal.SIGINT),
) -> None:
    """Run the binding's shutdown when the process is asked to terminate."""
    if binding._hook_installed:
        return
    binding._hook_installed = True

    def _on_signal(signum: int, frame) -> None:
        logger.info("Termination signal received", signal=signal.Signals(signum).name)
        binding.shutdown()

    for sig in signals:
        signal.signal(sig, _on_signal)


def bind_and_handle(
    app: ASGIApp,
    port: int,
    tls: TlsConfig | None = None,
    install_signal_handlers: bool = True,
    bind_timeout: float = BIND_TIMEOUT_SEC,
) -> ServiceBinding:
    """Bind ``app`` on the wildcard host and serve it from a dedicated thread."""
    options: dict = {}
    if tls is not None:
        options.update(
            ssl_certfile=tls.certfile,
            ssl_keyfile=tls.keyfile,
            ssl_keyfile_password=tls.password,
        )
    config = uvicorn.Config(
        app,
        host=BIND_HOST,
        port=port,
        log_config=None,
        timeout_graceful_shutdown=int(SHUTDOWN_STEP_TIMEOUT_SEC),
        **options,
    )
    server = ServiceServer(config)
    thread = threading.Thread(target=server.serve_forever, name="http-service", daemon=True)
    thread.start()

    deadline = time.monotonic() + bind_timeout
    while not server.started:
        if not thread.is_alive():
            raise ServiceBindError(
                f"Failed to bind {BIND_HOST}:{port} (exit code {server.exit_code})"
            )
        if time.monotonic() > deadline:
            server.should_exit = True
            raise ServiceBindError(f"Timed out binding {BIND_HOST}:{port}")
        time.sleep(0.05)

    binding = ServiceBinding(server, thread)
    logger.info("Service bound", host=BIND_HOST, port=binding.port, tls=tls is not None)
    if install_signal_handlers:
        add_shutdown_hook(binding)
    return binding


def start_http_service(app: ASGIApp, port: int, **kwargs) -> ServiceBinding:
    """Start serving ``app`` over plain HTTP and register the shutdown hook."""
    return bind_and_handle(app, port, **kwargs)


def start_https_service(app: ASGIApp, port: int, tls: TlsConfig, **kwargs) -> ServiceBinding:
    """Start serving ``app`` over HTTPS and register the shutdown hook."""
    return bind_and_handle(app, port, tls=tls, **kwargs)
