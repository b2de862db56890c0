import json
import sys
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Generator

import pytest
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import (
    InMemorySpanExporter,
)

# Ensure local source package (src/reqflow) is importable before tests collect
_PROJECT_ROOT: Path = Path(__file__).resolve().parents[1]
_SRC_PATH: Path = _PROJECT_ROOT / "src"
if _SRC_PATH.exists():
    sys.path.insert(0, str(_SRC_PATH))

from tests.utils.transports import RecordingTransport  # noqa: E402


@pytest.fixture
def recording_transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def span_exporter() -> InMemorySpanExporter:
    return InMemorySpanExporter()


@pytest.fixture
def tracer_provider(
    span_exporter: InMemorySpanExporter,
) -> Generator[TracerProvider, None, None]:
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(span_exporter))
    yield provider
    provider.shutdown()


class _TestHandler(BaseHTTPRequestHandler):
    def log_message(self, format, *args):  # noqa: A002
        pass

    def _write_json(self, status: int, payload: object) -> None:
        body = json.dumps(payload).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)
        self.wfile.flush()

    def do_POST(self):
        length = int(self.headers.get("Content-Length", 0))
        received = json.loads(self.rfile.read(length) or b"null")
        if self.path == "/echo":
            if received != {"a": "a"}:
                self._write_json(400, {"error": "unexpected body"})
                return
            self._write_json(200, {"a": "b"})
            # the response is already complete; keep the handler busy
            time.sleep(3)
            return
        self._write_json(404, {"error": "not found"})

    def do_GET(self):
        if self.path == "/chunked":
            # headers go out at once, the body trickles in
            parts = [b'{"a":', b'"trick', b'led"}']
            self.send_response(200)
            self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", str(sum(map(len, parts))))
            self.end_headers()
            self.wfile.flush()
            for part in parts:
                time.sleep(0.6)
                self.wfile.write(part)
                self.wfile.flush()
            return
        if self.path == "/slow":
            time.sleep(3)
            self._write_json(200, {"a": "late"})
            return
        if self.path == "/headers":
            self._write_json(200, {k.lower(): v for k, v in self.headers.items()})
            return
        self._write_json(404, {"error": "not found"})


@pytest.fixture
def http_server() -> Generator[str, None, None]:
    """Serve the test handler on localhost and yield its base URL."""
    server = ThreadingHTTPServer(("127.0.0.1", 0), _TestHandler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    host, port = server.server_address[:2]
    yield f"http://{host}:{port}"
    server.shutdown()
    server.server_close()
