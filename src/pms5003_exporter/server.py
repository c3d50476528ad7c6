"""HTTP endpoint serving the latest reading at /metrics."""
import logging
import threading

from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from urllib.parse import urlsplit

from .metrics import METRICS_TTL, EncodingError

logger = logging.getLogger(__name__)

METRICS_PATH = "/metrics"
CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"
REQUEST_TIMEOUT = 5.0  # seconds a connection may sit idle before it is dropped


class BindError(Exception):
    pass


class MetricsHandler(BaseHTTPRequestHandler):
    def setup(self):
        # Idle connections must not keep server_close() waiting forever
        self.timeout = self.server.request_timeout
        super().setup()

    def do_GET(self):
        if urlsplit(self.path).path == METRICS_PATH:
            self.handle_metrics()
        else:
            self.send_text(404, "not found")

    def do_HEAD(self):
        if urlsplit(self.path).path == METRICS_PATH:
            self.handle_metrics(head=True)
        else:
            self.send_text(404, "not found", head=True)

    def __getattr__(self, name):
        # Any other method: unknown paths are 404, /metrics only accepts GET and HEAD
        if name.startswith("do_"):
            return self.handle_other_method
        raise AttributeError(name)

    def handle_other_method(self):
        if urlsplit(self.path).path == METRICS_PATH:
            self.send_text(405, "method not allowed", headers={"Allow": "GET, HEAD"})
        else:
            self.send_text(404, "not found")

    def handle_metrics(self, head=False):
        try:
            body = self.server.store.render(self.server.ttl)
        except EncodingError:
            logger.exception("Error while encoding metrics")
            self.send_text(500, "internal server error", head=head)
            return

        # Stale or missing data is an empty success, never an error
        self.send_text(200, body, head=head)

    def send_text(self, status, text, head=False, headers=None):
        payload = text.encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", CONTENT_TYPE)
        self.send_header("Content-Length", str(len(payload)))
        for key, value in (headers or {}).items():
            self.send_header(key, value)
        self.end_headers()
        if not head:
            self.wfile.write(payload)

    def log_message(self, fmt, *args):
        logger.debug("%s - %s", self.address_string(), fmt % args)


class MetricsServer(ThreadingHTTPServer):
    # Request threads are joined by server_close() so in-flight scrapes complete
    daemon_threads = False
    block_on_close = True
    # A second exporter on the same port must fail to start
    allow_reuse_port = False

    def __init__(self, address, store, ttl=METRICS_TTL, request_timeout=REQUEST_TIMEOUT):
        self.store = store
        self.ttl = ttl
        self.request_timeout = request_timeout
        try:
            super().__init__(address, MetricsHandler)
        except OSError as e:
            raise BindError(f"Cannot listen on {address[0]}:{address[1]}: {e}") from e

    @property
    def url(self):
        host, port = self.server_address[:2]
        return f"http://{host}:{port}{METRICS_PATH}"

    def serve(self, stop_event: threading.Event):
        """Serve until stop_event is set, then drain in-flight requests and close."""
        thread = threading.Thread(target=self.serve_forever, name="http-accept", daemon=True)
        thread.start()
        logger.info("Serving metrics on %s", self.url)

        try:
            stop_event.wait()
        finally:
            logger.info("Stopping server")
            self.shutdown()
            thread.join()
            self.server_close()
            logger.info("Server stopped")
