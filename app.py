"""Application entry point for the Enhancement Request Tracker."""

from __future__ import annotations

from datetime import timedelta
from functools import wraps
from pathlib import Path
from typing import Any, Callable, Dict
from uuid import uuid4

import structlog
from flask import Flask, current_app, g, jsonify, request
from flask_cors import CORS
from structlog.contextvars import bind_contextvars, clear_contextvars
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix

from enhancement_tracker.auth import (
    IDENTITY_PROVIDER_EXTENSION,
    TOTP,
    IdentityProvider,
    IdentityProviderError,
    SupabaseIdentityProvider,
    get_identity_provider,
    require_auth,
)
from enhancement_tracker.config import AppSettings, get_settings, load_local_env
from enhancement_tracker.importer import MAX_UPLOAD_BYTES, UploadRejected, check_upload, import_csv
from enhancement_tracker.logging_config import configure_logging
from enhancement_tracker.models import EnhancementNotFoundError, StoreError
from enhancement_tracker.rate_limit import API_TIER, AUTH_TIER, SLACK_TIER, FixedWindowRateLimiter
from enhancement_tracker.schema import to_wire
from enhancement_tracker.security import (
    SLACK_SIGNATURE_HEADER,
    SLACK_TIMESTAMP_HEADER,
    is_valid_slack_request,
)
from enhancement_tracker.slack_bridge import (
    INVALID_SIGNATURE_TEXT,
    NOT_CONFIGURED_TEXT,
    create_from_slash_command,
    ephemeral,
)
from enhancement_tracker.store import EnhancementStore
from enhancement_tracker.validation import ValidationFailure, validate_create_payload, validate_update_payload

STORE_EXTENSION = "enhancement_store"
RATE_LIMITERS_EXTENSION = "rate_limiters"
CSV_UPLOAD_FIELD = "csvFile"

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "Referrer-Policy": "no-referrer",
}


def get_store() -> EnhancementStore:
    return current_app.extensions[STORE_EXTENSION]


def _client_address() -> str:
    # Forwarded headers only reach remote_addr through ProxyFix.
    return request.remote_addr or "unknown"


def _json_error(status: int, error: str, details: Any = None, **extra: Any):
    body: Dict[str, Any] = {"error": error}
    if details is not None:
        body["details"] = details
    body.update(extra)
    response = jsonify(body)
    response.status_code = status
    return response


def rate_limited(tier: str) -> Callable:
    """Apply the fixed-window counter for *tier* before the view runs."""

    def decorator(view: Callable) -> Callable:
        @wraps(view)
        def wrapper(*args: Any, **kwargs: Any):
            limiter: FixedWindowRateLimiter = current_app.extensions[RATE_LIMITERS_EXTENSION][tier]
            address = _client_address()
            decision = limiter.hit(address)
            if not decision.allowed:
                structlog.get_logger().warning("rate_limited", tier=tier, client=address)
                response = _json_error(429, "Too many requests", retryAfter=decision.retry_after)
                response.headers["Retry-After"] = str(decision.retry_after)
                return response
            return view(*args, **kwargs)

        return wrapper

    return decorator


def _build_rate_limiters(settings: AppSettings) -> Dict[str, FixedWindowRateLimiter]:
    return {
        API_TIER: FixedWindowRateLimiter(
            limit=settings.api_rate_limit, window=timedelta(seconds=settings.api_rate_window_seconds)
        ),
        AUTH_TIER: FixedWindowRateLimiter(
            limit=settings.auth_rate_limit, window=timedelta(seconds=settings.auth_rate_window_seconds)
        ),
        SLACK_TIER: FixedWindowRateLimiter(
            limit=settings.slack_rate_limit, window=timedelta(seconds=settings.slack_rate_window_seconds)
        ),
    }


def _register_error_handlers(flask_app: Flask) -> None:
    """Register JSON error handlers; unexpected errors carry a trace identifier."""

    @flask_app.errorhandler(ValidationFailure)
    def handle_validation_failure(error: ValidationFailure):
        return jsonify(error.to_dict()), 400

    @flask_app.errorhandler(UploadRejected)
    def handle_upload_rejected(error: UploadRejected):
        return _json_error(400, str(error))

    @flask_app.errorhandler(EnhancementNotFoundError)
    def handle_not_found(_error: EnhancementNotFoundError):
        return _json_error(404, "Enhancement not found")

    @flask_app.errorhandler(StoreError)
    def handle_store_error(error: StoreError):
        structlog.get_logger().error("store_error", error=error.message, code=error.code)
        return _json_error(500, "Database error", error.message, code=error.code)

    @flask_app.errorhandler(IdentityProviderError)
    def handle_identity_provider_error(error: IdentityProviderError):
        structlog.get_logger().warning("identity_provider_error", error=str(error), status=error.status_code)
        return _json_error(502, "Identity provider error", str(error), code="IDENTITY_PROVIDER_ERROR")

    @flask_app.errorhandler(HTTPException)
    def handle_http_exception(error: HTTPException):
        return _json_error(error.code or 500, error.name)

    @flask_app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):  # type: ignore[override]
        trace_id = str(uuid4())
        flask_app.logger.exception(
            "Unhandled application error", extra={"trace_id": trace_id}, exc_info=error
        )
        response = jsonify({"error": "internal_server_error", "trace_id": trace_id})
        response.status_code = 500
        return response


def _register_request_hooks(flask_app: Flask) -> None:
    @flask_app.before_request
    def bind_trace_id():
        trace_id = request.headers.get("X-Request-ID") or str(uuid4())
        g.trace_id = trace_id
        bind_contextvars(trace_id=trace_id)

    @flask_app.after_request
    def add_security_headers(response):
        for header, value in SECURITY_HEADERS.items():
            response.headers.setdefault(header, value)
        trace_id = g.get("trace_id")
        if trace_id:
            response.headers["X-Request-ID"] = trace_id
        return response

    @flask_app.teardown_request
    def unbind_trace_id(_exc):
        clear_contextvars()


def _register_enhancement_routes(flask_app: Flask) -> None:
    @flask_app.route("/api/enhancements", methods=["GET"])
    @rate_limited(API_TIER)
    @require_auth()
    def list_enhancements():
        status = (request.args.get("status") or "").strip() or None
        search = (request.args.get("search") or "").strip() or None
        rows = get_store().list_enhancements(status=status, search=search)
        structlog.get_logger().info("enhancements_listed", count=len(rows), status=status, search=search)
        return jsonify([to_wire(row) for row in rows])

    @flask_app.route("/api/enhancements/<int:enhancement_id>", methods=["GET"])
    @rate_limited(API_TIER)
    @require_auth()
    def get_enhancement(enhancement_id: int):
        return jsonify(to_wire(get_store().get_enhancement(enhancement_id)))

    @flask_app.route("/api/enhancements", methods=["POST"])
    @rate_limited(API_TIER)
    @require_auth()
    def create_enhancement():
        values = validate_create_payload(request.get_json(silent=True))
        enhancement = get_store().create_enhancement(values)
        structlog.get_logger().info(
            "enhancement_created",
            enhancement_id=enhancement.id,
            request_id=enhancement.request_id,
            user_id=g.principal.id,
        )
        return jsonify(to_wire(enhancement)), 201

    @flask_app.route("/api/enhancements/<int:enhancement_id>", methods=["PUT"])
    @rate_limited(API_TIER)
    @require_auth()
    def update_enhancement(enhancement_id: int):
        values = validate_update_payload(request.get_json(silent=True))
        enhancement = get_store().update_enhancement(enhancement_id, values)
        structlog.get_logger().info(
            "enhancement_updated",
            enhancement_id=enhancement_id,
            fields=sorted(values),
            user_id=g.principal.id,
        )
        return jsonify(to_wire(enhancement))

    @flask_app.route("/api/enhancements/<int:enhancement_id>", methods=["DELETE"])
    @rate_limited(API_TIER)
    @require_auth()
    def delete_enhancement(enhancement_id: int):
        get_store().delete_enhancement(enhancement_id)
        structlog.get_logger().info("enhancement_deleted", enhancement_id=enhancement_id, user_id=g.principal.id)
        return jsonify({"message": "Enhancement deleted successfully"})

    @flask_app.route("/api/workflow/stats", methods=["GET"])
    @rate_limited(API_TIER)
    @require_auth()
    def workflow_stats():
        return jsonify(get_store().status_counts())

    @flask_app.route("/api/enhancements/import-csv", methods=["POST"])
    @rate_limited(API_TIER)
    @require_auth()
    def import_enhancements():
        upload = request.files.get(CSV_UPLOAD_FIELD)
        if upload is None or not upload.filename:
            raise UploadRejected("No CSV file uploaded")
        data = upload.stream.read(MAX_UPLOAD_BYTES + 1)
        check_upload(mimetype=upload.mimetype, size=len(data))
        structlog.get_logger().info(
            "csv_import_started", filename=upload.filename, size=len(data), user_id=g.principal.id
        )
        summary = import_csv(get_store(), data)
        return jsonify(summary.to_dict())


def _register_slack_routes(flask_app: Flask, settings: AppSettings) -> None:
    @flask_app.route("/api/slack/new-request", methods=["POST"])
    @rate_limited(SLACK_TIER)
    def slack_new_request():
        # Slack expects HTTP 200 even when the call is refused.
        log = structlog.get_logger()
        raw_body = request.get_data(as_text=True)
        if not settings.slack_signing_secret:
            log.warning("slack_request_rejected", reason="signing_secret_missing")
            return jsonify(ephemeral(NOT_CONFIGURED_TEXT))
        if not is_valid_slack_request(
            signing_secret=settings.slack_signing_secret,
            timestamp=request.headers.get(SLACK_TIMESTAMP_HEADER, ""),
            body=raw_body,
            signature=request.headers.get(SLACK_SIGNATURE_HEADER, ""),
        ):
            log.warning("slack_request_rejected", reason="invalid_signature")
            return jsonify(ephemeral(INVALID_SIGNATURE_TEXT))
        return jsonify(create_from_slash_command(get_store(), request.form))


def _register_mfa_routes(flask_app: Flask) -> None:
    @flask_app.route("/api/mfa/status", methods=["GET"])
    @rate_limited(AUTH_TIER)
    @require_auth(require_mfa=False)
    def mfa_status():
        factors = [factor for factor in get_identity_provider().list_factors(g.principal) if factor.factor_type == TOTP]
        return jsonify(
            {
                "enabled": any(factor.is_verified_totp for factor in factors),
                "factors": [factor.to_dict() for factor in factors],
            }
        )

    @flask_app.route("/api/mfa/enroll", methods=["POST"])
    @rate_limited(AUTH_TIER)
    @require_auth(require_mfa=False)
    def mfa_enroll():
        payload = request.get_json(silent=True) or {}
        friendly_name = payload.get("friendlyName") if isinstance(payload, dict) else None
        enrollment = get_identity_provider().enroll_totp(g.principal, friendly_name)
        structlog.get_logger().info("mfa_enrollment_started", user_id=g.principal.id, factor_id=enrollment.factor_id)
        return jsonify(enrollment.to_dict())

    @flask_app.route("/api/mfa/verify-enrollment", methods=["POST"])
    @rate_limited(AUTH_TIER)
    @require_auth(require_mfa=False)
    def mfa_verify_enrollment():
        payload = request.get_json(silent=True)
        if not isinstance(payload, dict):
            payload = {}
        factor_id = str(payload.get("factorId") or "").strip()
        code = str(payload.get("code") or "").strip()
        missing = [name for name, value in (("factorId", factor_id), ("code", code)) if not value]
        if missing:
            raise ValidationFailure("Missing required fields", missing)
        try:
            get_identity_provider().verify_enrollment(g.principal, factor_id, code)
        except IdentityProviderError as exc:
            if exc.status_code is not None and 400 <= exc.status_code < 500:
                structlog.get_logger().info("mfa_verification_failed", user_id=g.principal.id, factor_id=factor_id)
                return _json_error(400, "Invalid verification code", str(exc), code="INVALID_CODE")
            raise
        structlog.get_logger().info("mfa_enrollment_verified", user_id=g.principal.id, factor_id=factor_id)
        return jsonify({"verified": True, "factorId": factor_id})

    @flask_app.route("/api/mfa/disable", methods=["DELETE"])
    @rate_limited(AUTH_TIER)
    @require_auth(require_mfa=False)
    def mfa_disable():
        provider = get_identity_provider()
        payload = request.get_json(silent=True)
        factor_id = str(payload.get("factorId") or "").strip() if isinstance(payload, dict) else ""
        if factor_id:
            targets = [factor_id]
        else:
            targets = [factor.id for factor in provider.list_factors(g.principal) if factor.factor_type == TOTP]
        for target in targets:
            provider.unenroll(g.principal, target)
        structlog.get_logger().info("mfa_disabled", user_id=g.principal.id, removed=targets)
        return jsonify({"removed": targets})


_LOGGING_CONFIGURED = False


def _load_version() -> str:
    version_file = Path(__file__).resolve().parent / "VERSION"
    if version_file.exists():
        return version_file.read_text(encoding="utf-8").strip()
    return "unknown"


def create_app(
    *,
    settings: AppSettings | None = None,
    store: EnhancementStore | None = None,
    identity_provider: IdentityProvider | None = None,
) -> Flask:
    """Create and configure the Flask application.

    The store and identity provider are built once here and shared by every
    request; tests pass their own.
    """

    global _LOGGING_CONFIGURED
    if not _LOGGING_CONFIGURED:
        configure_logging()
        _LOGGING_CONFIGURED = True

    if settings is None:
        load_local_env()
        settings = get_settings()
    if store is None:
        store = EnhancementStore.from_url(settings.database_url, id_prefix=settings.request_id_prefix)
    if identity_provider is None:
        identity_provider = SupabaseIdentityProvider(settings.supabase_url, settings.supabase_service_role_key)

    flask_app = Flask(__name__)
    if settings.trusted_proxy_hops:
        flask_app.wsgi_app = ProxyFix(flask_app.wsgi_app, x_for=settings.trusted_proxy_hops)
    flask_app.config["APP_VERSION"] = _load_version()
    flask_app.logger.setLevel("INFO")
    flask_app.extensions[STORE_EXTENSION] = store
    flask_app.extensions[IDENTITY_PROVIDER_EXTENSION] = identity_provider
    flask_app.extensions[RATE_LIMITERS_EXTENSION] = _build_rate_limiters(settings)

    CORS(
        flask_app,
        resources={r"/api/*": {"origins": settings.allowed_origins}},
        allow_headers=["Content-Type", "Authorization"],
        methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        supports_credentials=False,
        max_age=3600,
    )

    _register_error_handlers(flask_app)
    _register_request_hooks(flask_app)
    _register_enhancement_routes(flask_app)
    _register_slack_routes(flask_app, settings)
    _register_mfa_routes(flask_app)

    @flask_app.route("/healthz", methods=["GET"])
    def healthz():
        health: dict[str, object] = {"ok": True}
        health["version"] = flask_app.config.get("APP_VERSION", "unknown")
        health["config"] = "valid"
        try:
            get_store().ping()
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
    application.run(host="0.0.0.0", port=3000, debug=True)
