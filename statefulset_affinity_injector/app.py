import logging
import signal
import threading
import time

from flask import Flask
from werkzeug.serving import make_server
from werkzeug.wsgi import ClosingIterator

from .config import settings
from .routes import create_routes

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(message)s",
)
log = logging.getLogger("statefulset-affinity-injector")


def create_app(settings):
    app = Flask(__name__)
    app.register_blueprint(create_routes(settings))
    return app


class InFlightTracker:
    """WSGI middleware counting requests whose response has not been closed yet."""

    def __init__(self, wsgi_app):
        self.wsgi_app = wsgi_app
        self._active = 0
        self._idle = threading.Condition()

    def __call__(self, environ, start_response):
        with self._idle:
            self._active += 1
        try:
            return ClosingIterator(self.wsgi_app(environ, start_response), self._finished)
        except BaseException:
            self._finished()
            raise

    def _finished(self):
        with self._idle:
            self._active -= 1
            if self._active == 0:
                self._idle.notify_all()

    @property
    def active(self) -> int:
        with self._idle:
            return self._active

    def wait_idle(self, timeout: float) -> bool:
        with self._idle:
            return self._idle.wait_for(lambda: self._active == 0, timeout=timeout)


app = create_app(settings)


def serve(settings=settings):
    """
    Run the webhook until SIGTERM/SIGINT or a server failure, then stop
    accepting connections and wait up to graceful_shutdown_seconds for
    in-flight requests to finish.
    """
    ssl_context = None
    protocol = "http"
    if settings.enable_tls:
        ssl_context = (settings.cert_file, settings.key_file)
        protocol = "https"

    stop = threading.Event()

    def _on_signal(signum, _frame):
        log.info("Received signal: %s", signal.Signals(signum).name)
        stop.set()

    previous = {
        sig: signal.signal(sig, _on_signal) for sig in (signal.SIGTERM, signal.SIGINT)
    }
    try:
        tracker = InFlightTracker(create_app(settings))
        server = make_server(
            "0.0.0.0", settings.port, tracker, threaded=True, ssl_context=ssl_context
        )

        def _serve_forever():
            try:
                server.serve_forever()
            except Exception:
                log.error("Server error", exc_info=True)
            finally:
                stop.set()

        worker = threading.Thread(
            target=_serve_forever, name="webhook-server", daemon=True
        )
        worker.start()
        log.info("Server running on %s://0.0.0.0:%d", protocol, settings.port)
        stop.wait()

        deadline = time.monotonic() + settings.graceful_shutdown_seconds
        # shutdown() blocks until the serve loop exits, so bound it from a helper thread
        threading.Thread(
            target=server.shutdown, name="webhook-shutdown", daemon=True
        ).start()
        worker.join(timeout=max(0.0, deadline - time.monotonic()))
        drained = tracker.wait_idle(timeout=max(0.0, deadline - time.monotonic()))
        if worker.is_alive() or not drained:
            log.warning(
                "Graceful shutdown did not finish within %ss (%d requests still in flight)",
                settings.graceful_shutdown_seconds,
                tracker.active,
            )
        else:
            log.info("Server gracefully stopped")
        server.server_close()
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


if __name__ == "__main__":
    log.info("Starting webhook server...")
    serve()
