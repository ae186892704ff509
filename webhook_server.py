#!/usr/bin/env python3
"""HTTP endpoint that receives GitHub webhooks and updates Jira checklists.

Routes:
- POST /webhook (or /): signed GitHub deliveries (ping, pull_request)
- GET /health: liveness check
"""

from __future__ import annotations

import argparse
import dataclasses
import json
import logging
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from urllib.parse import urlparse

import requests

import config as cfg
from checklist_document import MalformedDocument
from event_handler import handle_pull_request_event
from github_webhook import (
    EVENT_HEADER,
    SIGNATURE_HEADER,
    PayloadError,
    SignatureError,
    WebhookEventType,
    parse_pull_request_event,
    verify_signature,
)
from jira_client import JiraApiError, JiraClient
from utils import setup_logging

logger = logging.getLogger(__name__)

WEBHOOK_PATHS = ("/", "/webhook")
MAX_BODY_BYTES = 25 * 1024 * 1024


class WebhookError(Exception):
    def __init__(self, status: int, message: str, data: dict[str, object] | None = None):
        super().__init__(message)
        self.status = status
        self.message = message
        self.data = data


class BridgeApp:
    def __init__(self, settings: cfg.Settings, client: JiraClient | None = None):
        self.settings = settings
        self.client = client or JiraClient.from_settings(settings)

    def handle_webhook(self, event_type: str | None, signature: str | None, body: bytes) -> dict[str, object]:
        try:
            verify_signature(body, signature, self.settings.webhook_secret)
        except SignatureError as exc:
            logger.warning("Request validation error: %s", exc)
            raise WebhookError(401, str(exc)) from exc

        kind = WebhookEventType.from_header(event_type)
        if kind is WebhookEventType.PING:
            return {"pong": True}
        if kind is WebhookEventType.OTHER:
            logger.warning("Received event type that was unexpected: %s", event_type)
            return {"ignored": event_type or ""}

        try:
            event = parse_pull_request_event(body)
        except PayloadError as exc:
            logger.warning("Request validation error: %s", exc)
            raise WebhookError(400, str(exc)) from exc

        summary = handle_pull_request_event(
            event,
            self.client,
            section_title=self.settings.section_title,
            dry_run=self.settings.dry_run,
        )
        data = summary.as_dict()
        if summary.failures:
            status = max(error_status(exc) for exc in summary.failures.values())
            raise WebhookError(status, "Some issues could not be updated", data)
        return data


def error_status(exc: Exception) -> int:
    """HTTP status for an error raised while handling one issue key."""
    if isinstance(exc, MalformedDocument):
        return 422
    if isinstance(exc, (JiraApiError, requests.RequestException)):
        return 502
    return 500


def _send_json(handler: BaseHTTPRequestHandler, status: int, payload: dict[str, object]) -> None:
    body = (json.dumps(payload, ensure_ascii=False) + "\n").encode("utf-8")
    handler.send_response(status)
    handler.send_header("Content-Type", "application/json; charset=utf-8")
    handler.send_header("Content-Length", str(len(body)))
    handler.end_headers()
    handler.wfile.write(body)


def _read_body(handler: BaseHTTPRequestHandler) -> bytes:
    raw_len = handler.headers.get("Content-Length", "0")
    try:
        length = int(raw_len)
    except ValueError as exc:
        raise WebhookError(400, "Invalid Content-Length") from exc

    if length < 0 or length > MAX_BODY_BYTES:
        raise WebhookError(413, "Request body too large")
    if length == 0:
        return b""
    return handler.rfile.read(length)


def make_handler(app: BridgeApp):
    class WebhookHandler(BaseHTTPRequestHandler):
        def do_GET(self) -> None:  # type: ignore[override]
            path = urlparse(self.path).path
            if path == "/health":
                _send_json(self, HTTPStatus.OK, {"ok": True})
                return
            if path in WEBHOOK_PATHS:
                _send_json(self, 405, {"ok": False, "error": "Use POST for webhooks"})
                return
            _send_json(self, 404, {"ok": False, "error": "Not found"})

        def do_POST(self) -> None:  # type: ignore[override]
            path = urlparse(self.path).path
            if path not in WEBHOOK_PATHS:
                _send_json(self, 404, {"ok": False, "error": "Unknown endpoint"})
                return

            try:
                body = _read_body(self)
                data = app.handle_webhook(
                    self.headers.get(EVENT_HEADER),
                    self.headers.get(SIGNATURE_HEADER),
                    body,
                )
                _send_json(self, 200, {"ok": True, "data": data})
            except WebhookError as exc:
                payload: dict[str, object] = {"ok": False, "error": exc.message}
                if exc.data is not None:
                    payload["data"] = exc.data
                _send_json(self, exc.status, payload)
            except Exception as exc:
                logger.exception("Internal error while handling webhook")
                _send_json(self, 500, {"ok": False, "error": str(exc)})

        def log_message(self, format: str, *args: object) -> None:  # type: ignore[override]
            logger.debug("%s - %s", self.address_string(), format % args)

    return WebhookHandler


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Receive GitHub pull request webhooks and update Jira checklists.")
    parser.add_argument("--host", default=cfg.HOST)
    parser.add_argument("--port", type=int, default=cfg.PORT)
    parser.add_argument("--dry-run", action="store_true", help="Log checklist changes without writing to Jira.")
    parser.add_argument("--log-level", default=cfg.LOG_LEVEL)
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    setup_logging(args.log_level)

    try:
        settings = cfg.load_settings()
    except cfg.ConfigError as exc:
        logger.error("Configuration error: %s", exc)
        return 2
    if args.dry_run:
        settings = dataclasses.replace(settings, dry_run=True)

    app = BridgeApp(settings)
    handler_cls = make_handler(app)

    with ThreadingHTTPServer((args.host, args.port), handler_cls) as server:
        logger.info("Serving webhooks for %s", settings.jira_url)
        logger.info("URL: http://%s:%s/webhook", args.host, args.port)
        if settings.dry_run:
            logger.info("Dry run mode: Jira will not be modified")
        server.serve_forever()

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
