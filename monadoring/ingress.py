"""
HTTP entry point for alerts raised by an external reporter (e.g. a dashboard
that does its own RPC failover). ``POST /api/alert`` accepts either a
validator alert or an RPC alert and runs it through the dispatcher.
"""

from __future__ import annotations

import json
import socketserver
import threading
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any, Optional, Tuple

from .dispatcher import AlertDispatcher
from .errors import InvalidAlertRequest
from .events import AlertEvent, MissedBlock, Network, Recovered, RpcFailover, RpcRecovered
from .log import Logger

ALERT_PATH = "/api/alert"


class _ThreadedHTTPServer(socketserver.ThreadingMixIn, HTTPServer):
    daemon_threads = True


def _require_str(body: dict, name: str) -> str:
    value = body.get(name)
    if not isinstance(value, str) or not value:
        raise InvalidAlertRequest(f"'{name}' must be a non-empty string")
    return value


def _require_int(body: dict, name: str) -> int:
    value = body.get(name)
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidAlertRequest(f"'{name}' must be an integer")
    return value


def _network(body: dict) -> Network:
    try:
        return Network(body.get("network"))
    except ValueError:
        raise InvalidAlertRequest(f"unknown network: {body.get('network')!r}") from None


def content_length(value: Optional[str]) -> int:
    if value is None:
        return 0
    try:
        length = int(value)
    except ValueError:
        raise InvalidAlertRequest(f"invalid Content-Length: {value!r}") from None
    if length < 0:
        raise InvalidAlertRequest(f"invalid Content-Length: {value!r}")
    return length


def parse_alert_request(body: Any) -> AlertEvent:
    if not isinstance(body, dict):
        raise InvalidAlertRequest("request body must be a JSON object")

    kind = body.get("type")
    if kind in ("rpc_failover", "rpc_recovered"):
        network = _network(body)
        from_rpc = _require_str(body, "fromRpc")
        to_rpc = _require_str(body, "toRpc")
        if kind == "rpc_recovered":
            return RpcRecovered(network=network, from_rpc=from_rpc, to_rpc=to_rpc)
        reason = body.get("reason")
        if reason is not None and not isinstance(reason, str):
            raise InvalidAlertRequest("'reason' must be a string")
        return RpcFailover(network=network, from_rpc=from_rpc, to_rpc=to_rpc, reason=reason)

    if kind in ("missed", "recovered"):
        network = _network(body)
        validator = _require_str(body, "validator")
        round_ = _require_int(body, "round")
        height = body.get("height")
        if height is not None and (isinstance(height, bool) or not isinstance(height, int)):
            raise InvalidAlertRequest("'height' must be an integer or null")
        if kind == "missed":
            return MissedBlock(validator=validator, network=network, round=round_, height=height)
        return Recovered(validator=validator, network=network, round=round_, height=height)

    raise InvalidAlertRequest(f"unknown alert type: {kind!r}")


class AlertIngressServer:
    def __init__(
        self,
        dispatcher: AlertDispatcher,
        host: str = "127.0.0.1",
        port: int = 3030,
        logger: Logger | None = None,
    ):
        self.dispatcher = dispatcher
        self.host = host
        self.port = port
        self.logger = logger
        self._server: Optional[_ThreadedHTTPServer] = None
        self._thread: Optional[threading.Thread] = None
        self.url: Optional[str] = None

    def __enter__(self) -> AlertIngressServer:
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    def _log(self, msg: str) -> None:
        if self.logger:
            self.logger.log(msg)

    def handle(self, raw: bytes) -> Tuple[int, dict]:
        """Process one request body and return ``(status, response)``."""
        try:
            event = parse_alert_request(json.loads(raw.decode("utf-8")))
        except (ValueError, UnicodeDecodeError) as e:
            return HTTPStatus.BAD_REQUEST, {"success": False, "error": f"invalid JSON: {e}"}
        except InvalidAlertRequest as e:
            return HTTPStatus.BAD_REQUEST, {"success": False, "error": str(e)}

        try:
            result = self.dispatcher.dispatch(event)
        except Exception as e:
            self._log(f"ERROR: Alert API error: {e}")
            return HTTPStatus.INTERNAL_SERVER_ERROR, {"success": False, "error": "Failed to send alerts"}

        response = {
            "success": True,
            "alerts": [{"service": name, "success": ok} for name, ok in result.deliveries.items()],
        }
        if result.consecutive_misses is not None:
            response["consecutiveMisses"] = result.consecutive_misses
        if result.suppressed:
            response["suppressed"] = True
        return HTTPStatus.OK, response

    def _make_handler(self):
        ingress = self

        class Handler(BaseHTTPRequestHandler):
            def _reply(self, status: int, payload: dict) -> None:
                body = json.dumps(payload).encode()
                self.send_response(status)
                self.send_header("Content-Type", "application/json")
                self.send_header("Content-Length", str(len(body)))
                self.end_headers()
                self.wfile.write(body)

            def do_POST(self) -> None:  # noqa: N802 - required by BaseHTTPRequestHandler
                if self.path.split("?", 1)[0] != ALERT_PATH:
                    self._reply(HTTPStatus.NOT_FOUND, {"success": False, "error": "not found"})
                    return
                try:
                    length = content_length(self.headers.get("Content-Length"))
                except InvalidAlertRequest as e:
                    self._reply(HTTPStatus.BAD_REQUEST, {"success": False, "error": str(e)})
                    return
                status, payload = ingress.handle(self.rfile.read(length))
                self._reply(status, payload)

            def log_message(self, format: str, *args) -> None:  # noqa: A003
                return

        return Handler

    def start(self) -> None:
        self._server = _ThreadedHTTPServer((self.host, self.port), self._make_handler())
        host, port = self._server.server_address[:2]
        self.url = f"http://{host}:{port}{ALERT_PATH}"
        self._thread = threading.Thread(target=self._server.serve_forever, name="alert-ingress", daemon=True)
        self._thread.start()
        self._log(f"Alert ingress listening on {self.url}")

    def stop(self) -> None:
        if self._server is not None:
            self._server.shutdown()
            self._server.server_close()
            self._server = None
        if self._thread is not None:
            self._thread.join(timeout=5)
            self._thread = None
