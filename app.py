"""Application entry point for the Discord task bridge."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Callable
from uuid import uuid4

from flask import Flask, jsonify, request
from pydantic import ValidationError
from sqlalchemy import text
import structlog
from structlog.contextvars import bind_contextvars, unbind_contextvars
from werkzeug.exceptions import HTTPException

from discord_task_bridge.config import AppSettings, get_settings
from discord_task_bridge.db import create_session_factory, session_scope
from discord_task_bridge.discord_client import DiscordClient
from discord_task_bridge.interactions import HandlerContext, handle_interaction
from discord_task_bridge.linking import issue_code, unlink
from discord_task_bridge.logging_config import configure_logging
from discord_task_bridge.notifications import ServiceResult, send_task_notification
from discord_task_bridge.security import (
    DISCORD_SIGNATURE_HEADER,
    DISCORD_TIMESTAMP_HEADER,
    is_authorized_service_call,
    verify_discord_signature,
)
from discord_task_bridge.welcome import handle_welcome_event

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
}

ALL_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


def _json_error(message: str, status: int):
    response = jsonify({"error": message})
    response.status_code = status
    return response


def _build_handler_context(settings: AppSettings) -> HandlerContext:
    return HandlerContext(
        settings=settings,
        discord=DiscordClient.from_settings(settings),
        sessions=create_session_factory(settings.database_url),
    )


def _register_error_handlers(flask_app: Flask) -> None:
    """Register a JSON error handler that attaches a trace identifier."""

    @flask_app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):  # type: ignore[override]
        if isinstance(error, HTTPException):
            return error
        trace_id = str(uuid4())
        structlog.get_logger().error(
            "unhandled_application_error",
            trace_id=trace_id,
            error_type=type(error).__name__,
        )
        flask_app.logger.exception(
            "Unhandled application error", extra={"trace_id": trace_id}, exc_info=error
        )
        response = jsonify({"error": str(error), "trace_id": trace_id})
        response.status_code = 500
        return response


def _register_cors(flask_app: Flask) -> None:
    @flask_app.after_request
    def add_cors_headers(response):
        for header, value in CORS_HEADERS.items():
            response.headers.setdefault(header, value)
        return response


def _preflight_or_method_error():
    """Answer preflight and non-POST requests; None means carry on."""

    if request.method == "OPTIONS":
        return "ok", 200
    if request.method != "POST":
        return _json_error("Method not allowed", 405)
    return None


def _register_interaction_routes(flask_app: Flask, settings: AppSettings, context: HandlerContext) -> None:
    @flask_app.route("/discord/interactions", methods=ALL_METHODS)
    def discord_interactions():
        early = _preflight_or_method_error()
        if early is not None:
            return early

        trace_id = str(uuid4())
        bind_contextvars(trace_id=trace_id)
        log = structlog.get_logger()
        try:
            raw_body = request.get_data(cache=True)
            if not verify_discord_signature(
                public_key=settings.public_key,
                signature=request.headers.get(DISCORD_SIGNATURE_HEADER),
                timestamp=request.headers.get(DISCORD_TIMESTAMP_HEADER),
                body=raw_body,
            ):
                log.warning("signature_rejected")
                return _json_error("Unauthorized", 401)

            payload = json.loads(raw_body)
            log.info(
                "interaction_received",
                interaction_type=payload.get("type") if isinstance(payload, dict) else None,
            )
            try:
                reply = handle_interaction(payload, context)
            except ValidationError as exc:
                log.warning("interaction_malformed", error_count=exc.error_count())
                return _json_error("Malformed interaction", 400)
            return jsonify(reply), 200
        finally:
            unbind_contextvars("trace_id")


def _register_service_routes(flask_app: Flask, settings: AppSettings, context: HandlerContext) -> None:
    def _authorised() -> bool:
        return is_authorized_service_call(
            api_key=settings.service_api_key,
            authorization=request.headers.get("Authorization"),
        )

    def _service_body():
        body = request.get_json(silent=True)
        return body if isinstance(body, dict) else None

    def _run_service(call: Callable[[dict], ServiceResult]):
        early = _preflight_or_method_error()
        if early is not None:
            return early
        if not _authorised():
            return _json_error("Unauthorized", 401)
        body = _service_body()
        if body is None:
            return _json_error("Request body must be a JSON object", 400)
        result = call(body)
        return jsonify(result.body), result.status_code

    @flask_app.route("/discord/notifications", methods=ALL_METHODS)
    def discord_notifications():
        return _run_service(
            lambda body: send_task_notification(body, discord=context.discord, sessions=context.sessions)
        )

    @flask_app.route("/discord/welcome", methods=ALL_METHODS)
    def discord_welcome():
        return _run_service(lambda body: handle_welcome_event(body, discord=context.discord))

    @flask_app.route("/discord/link-code", methods=ALL_METHODS)
    def discord_link_code():
        return _run_service(
            lambda body: issue_code(
                body, sessions=context.sessions, ttl_minutes=settings.link_code_ttl_minutes
            )
        )

    @flask_app.route("/discord/unlink", methods=ALL_METHODS)
    def discord_unlink():
        return _run_service(lambda body: unlink(body, sessions=context.sessions))


_LOGGING_CONFIGURED = False


def _load_version() -> str:
    version_file = Path(__file__).resolve().parent / "VERSION"
    if version_file.exists():
        return version_file.read_text(encoding="utf-8").strip()
    return "unknown"


def create_app(context: HandlerContext | None = None) -> Flask:
    """Create and configure the Flask application.

    *context* lets callers inject settings, a Discord client and a session
    factory; by default all three are built from the environment.
    """

    global _LOGGING_CONFIGURED
    if not _LOGGING_CONFIGURED:
        configure_logging()
        _LOGGING_CONFIGURED = True

    if context is None:
        context = _build_handler_context(get_settings())
    settings = context.settings

    flask_app = Flask(__name__)
    flask_app.config["APP_VERSION"] = _load_version()
    flask_app.logger.setLevel("INFO")

    _register_error_handlers(flask_app)
    _register_cors(flask_app)
    _register_interaction_routes(flask_app, settings, context)
    _register_service_routes(flask_app, settings, context)

    @flask_app.route("/healthz", methods=["GET"])
    def healthz():
        health: dict[str, object] = {"ok": True}
        health["version"] = flask_app.config.get("APP_VERSION", "unknown")
        try:
            get_settings()
            health["config"] = "valid"
        except Exception as exc:
            health["config"] = "invalid"
            health["config_error"] = str(exc)
            health["ok"] = False

        try:
            with session_scope(context.sessions) as session:
                session.execute(text("SELECT 1"))
            health["db"] = "up"
        except Exception as exc:
            health["db"] = "down"
            health["db_error"] = str(exc)
            health["ok"] = False

        status = 200 if health["ok"] else 503
        return jsonify(health), status

    return flask_app


if __name__ == "__main__":  # pragma: no cover - manual execution helper
    application = create_app()
    application.run(host="0.0.0.0", port=3000)
