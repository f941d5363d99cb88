import json
import logging
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Dict, Optional

from prometheus_client import CollectorRegistry

from .client import BeaconNodeClient
from .config import ExporterConfig
from .disk import DiskUsage
from .exporter import ConsensusExporter, consensus_const_labels
from .metrics import MetricsSink

log = logging.getLogger("eth-metrics-exporter")


class ExporterDaemon:
    def __init__(self, config: ExporterConfig):
        self.config = config
        self.stop_event = threading.Event()
        self.registry = CollectorRegistry()
        self.httpd: Optional[ThreadingHTTPServer] = None
        self.disk_thread: Optional[threading.Thread] = None

        self.consensus: Optional[ConsensusExporter] = None
        if config.consensus_url:
            sink = MetricsSink(config.namespace, consensus_const_labels(config.node_name), self.registry)
            self.consensus = ConsensusExporter(BeaconNodeClient(config.consensus_url), sink)

        self.disk = DiskUsage(
            MetricsSink(config.namespace, registry=self.registry),
            config.disk_directories,
            interval=config.disk_interval,
        )

    def status(self) -> Dict[str, Any]:
        status: Dict[str, Any] = {
            "node_name": self.config.node_name,
            "disk": [record.to_dict() for record in self.disk.last_usage],
        }
        if self.consensus:
            status["consensus"] = self.consensus.status()
        return status

    def start_background(self) -> None:
        """Start collectors without serving HTTP."""
        if self.consensus:
            self.consensus.start_async(self.stop_event)
        else:
            log.info("No consensus node configured, skipping consensus metrics")

        self.disk_thread = threading.Thread(
            target=self.disk.start,
            args=(self.stop_event,),
            name="disk-usage",
            daemon=True,
        )
        self.disk_thread.start()

    def start(self):
        """Start the collectors and the HTTP server."""
        self.start_background()

        addr = (self.config.host, self.config.port)
        httpd = ThreadingHTTPServer(addr, self._make_handler())
        self.httpd = httpd

        log.info(f"Starting HTTP server on {addr[0]}:{addr[1]}")
        try:
            httpd.serve_forever()
        except KeyboardInterrupt:
            log.info("Shutting down...")
        finally:
            self.stop()

    def stop(self):
        """Stop the daemon and clean up."""
        self.stop_event.set()
        if self.disk_thread:
            self.disk_thread.join(timeout=5)
        if self.httpd:
            self.httpd.server_close()
            self.httpd = None

    def _make_handler(self):
        """Create a request handler with access to this daemon instance."""
        daemon = self

        class RequestHandler(BaseHTTPRequestHandler):
            def do_GET(self):
                path = self.path.split('?', 1)[0]
                if path == '/metrics':
                    self._handle_metrics()
                elif path == '/status':
                    self._handle_status()
                elif path == '/healthz':
                    self._handle_healthz()
                else:
                    self._handle_not_found()

            def _set_headers(self, status_code=200, content_type="application/json"):
                self.send_response(status_code)
                self.send_header("Content-Type", content_type)
                self.send_header("Cache-Control", "no-store")
                self.end_headers()

            def _handle_metrics(self):
                # Every sink shares the daemon registry
                data = daemon.disk.sink.render()
                self._set_headers(content_type=MetricsSink.content_type)
                self.wfile.write(data)

            def _handle_status(self):
                data = json.dumps(daemon.status(), indent=2).encode('utf-8')
                self._set_headers()
                self.wfile.write(data)

            def _handle_healthz(self):
                self._set_headers(content_type="text/plain")
                self.wfile.write(b"ok\n")

            def _handle_not_found(self):
                self._set_headers(404)
                self.wfile.write(json.dumps({
                    "error": "Not found",
                    "endpoints": ["/metrics", "/status", "/healthz"]
                }).encode('utf-8'))

            def log_message(self, fmt, *args):
                log.debug(f"{self.address_string()} - {fmt % args}")

        return RequestHandler
