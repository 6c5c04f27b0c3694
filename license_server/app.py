import logging
from datetime import datetime, timezone
from functools import wraps
from urllib.parse import urlparse

from flask import Blueprint, Flask, current_app, jsonify, request
from werkzeug.exceptions import HTTPException

from .config import Settings
from .db import make_engine
from .errors import InvalidInput, LicenseServerError, NotFound, StoreUnavailable
from .extensions import init_limiter
from .reconciler import LicenseReconciler
from .security import is_valid_email, mask_license_key, normalize_email
from .store import LicenseStore, init_store
from .stripe_api import CustomerResolver
from .sync import DataSyncGate
from .webhooks import WebhookProcessor, construct_event

logger = logging.getLogger(__name__)

api = Blueprint("api", __name__)
# license issuance and verification, rate limited per caller address
licenses = Blueprint("licenses", __name__)
hooks = Blueprint("hooks", __name__)
dev = Blueprint("dev", __name__)

ENDPOINTS = [
    "GET /health - Health check",
    "POST /api/request-license - Get or create the license for an email",
    "POST /api/verify-license - Verify premium license",
    "POST /api/activate-license - Activate premium license",
    "POST /api/sync/upload - Upload user data (premium only)",
    "GET /api/sync/download/:licenseKey - Download user data (premium only)",
    "GET /api/license/:licenseKey/info - License details",
    "GET /api/check-email/:email - Check whether an email has a license",
    "POST /webhook - Stripe webhook",
]

PREMIUM_FEATURES = {
    "unlimited_notes": True,
    "unlimited_folders": True,
    "cloud_sync": True,
    "premium_support": True,
}


class Services:
    def __init__(self, settings, store, status, resolver=None):
        self.settings = settings
        self.store = store
        self.status = status
        self.reconciler = LicenseReconciler(store)
        self.sync = DataSyncGate(store)
        if resolver is None:
            resolver = CustomerResolver(store, settings.STRIPE_SECRET_KEY, settings.STRIPE_API_BASE)
        self.webhooks = WebhookProcessor(store, self.reconciler, resolver)


def services() -> Services:
    return current_app.extensions["license_server"]


def _iso(value):
    return value.isoformat() if value is not None else None


def _payload() -> dict:
    j = request.get_json(force=True, silent=True)
    return j if isinstance(j, dict) else {}


def requires_store(view):
    @wraps(view)
    def wrapper(*args, **kwargs):
        if not services().status.reachable:
            raise StoreUnavailable()
        return view(*args, **kwargs)
    return wrapper


@api.get("/")
def root():
    svc = services()
    return jsonify({
        "name": "Notes License API",
        "version": "1.0.0",
        "status": "running",
        "database": "connected" if svc.status.reachable else "disconnected",
        "stripe": "configured" if svc.settings.stripe_configured else "not_configured",
        "endpoints": ENDPOINTS,
    })


@api.get("/health")
def health():
    svc = services()
    return jsonify({
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "database": "connected" if svc.status.reachable else "disconnected",
        "stripe": "configured" if svc.settings.stripe_configured else "not_configured",
    })


@licenses.post("/api/request-license")
@requires_store
def request_license():
    email = _payload().get("email")
    if not email or not isinstance(email, str):
        raise InvalidInput("Email is required")
    grant = services().reconciler.request_license(email)
    messages = {
        "created": "License created successfully",
        "existing": "License found for this email",
        "reactivated": "License reactivated",
    }
    return jsonify({
        "success": True,
        "message": messages[grant.action],
        "licenseKey": grant.license_key,
        "status": grant.status,
        "created": grant.created,
        "action": grant.action,
    })


@licenses.post("/api/verify-license")
@requires_store
def verify_license():
    key = _payload().get("licenseKey")
    if not key or not isinstance(key, str):
        raise InvalidInput("Invalid license key format")
    lic = services().store.find_by_license_key(key.strip(), active_only=True)
    if lic is None:
        logger.info("license not found or inactive: %s", mask_license_key(key))
        raise NotFound()
    return jsonify({"success": True, "valid": True, "message": "License is valid", "user": lic.to_public()})


@licenses.post("/api/activate-license")
@requires_store
def activate_license():
    j = _payload()
    key = (j.get("licenseKey") or "").strip() if isinstance(j.get("licenseKey"), str) else ""
    email = j.get("email")
    if not key or not email:
        raise InvalidInput("License key and email are required")
    if not is_valid_email(email):
        raise InvalidInput("Invalid email format")
    lic = services().store.activate_license(key, normalize_email(email))
    logger.info("license activated: %s", mask_license_key(key))
    return jsonify({"success": True, "message": "License activated successfully", "user": lic.to_public()})


@api.post("/api/sync/upload")
@requires_store
def sync_upload():
    j = _payload()
    key = j.get("licenseKey")
    if not key or not isinstance(key, str) or j.get("data") is None:
        raise InvalidInput("License key and data are required")
    uploaded_at = services().sync.upload(key, j.get("dataType"), j["data"])
    return jsonify({"success": True, "message": "Data uploaded successfully", "uploaded_at": _iso(uploaded_at)})


@api.get("/api/sync/download/<license_key>")
@requires_store
def sync_download(license_key):
    found = services().sync.download(license_key, request.args.get("dataType"))
    if found is None:
        return jsonify({"success": True, "data": None, "message": "No data found for this license"})
    return jsonify({"success": True, "data": found.content, "last_modified": _iso(found.last_modified)})


@api.get("/api/license/<license_key>/info")
@requires_store
def license_info(license_key):
    lic = services().store.find_by_license_key(license_key, active_only=True)
    if lic is None:
        raise NotFound("License not found")
    info = lic.to_public()
    info["key"] = mask_license_key(license_key)
    info["features"] = PREMIUM_FEATURES
    return jsonify({"success": True, "license": info})


@api.get("/api/check-email/<email>")
@requires_store
def check_email(email):
    if not is_valid_email(email):
        raise InvalidInput("Invalid email format")
    lic = services().store.find_by_email(normalize_email(email))
    if lic is None:
        return jsonify({"success": True, "hasLicense": False})
    return jsonify({
        "success": True,
        "hasLicense": True,
        "licenseKey": lic.license_key,
        "status": lic.status,
        "plan": lic.plan_type,
        "created": _iso(lic.created_at),
    })


GENERATE_PAGE = """<!DOCTYPE html>
<html><head><title>Get your premium license</title></head>
<body>
<h1>Premium license</h1>
<form id="f"><input type="email" id="email" placeholder="your@email.com" required>
<button type="submit">Generate my license</button></form>
<pre id="result"></pre>
<script>
document.getElementById('f').onsubmit = async (e) => {
  e.preventDefault();
  const r = await fetch('/api/request-license', {method: 'POST',
    headers: {'Content-Type': 'application/json'},
    body: JSON.stringify({email: document.getElementById('email').value})});
  const d = await r.json();
  document.getElementById('result').textContent = d.success ? d.licenseKey : d.error;
};
</script>
</body></html>
"""


def _referrer_allowed(allowed) -> bool:
    if not allowed:
        return True
    host = (urlparse(request.referrer or "").hostname or "").lower()
    return any(host == a or host.endswith("." + a) for a in allowed)


@api.get("/generate")
def generate_page():
    if not _referrer_allowed(services().settings.GENERATE_ALLOWED_REFERRERS):
        return jsonify({"success": False, "error": "Access denied"}), 403
    return GENERATE_PAGE, 200, {"Content-Type": "text/html; charset=utf-8"}


@hooks.post("/webhook")
def stripe_webhook():
    svc = services()
    secret = svc.settings.STRIPE_WEBHOOK_SECRET
    body = request.get_data()
    if not secret:
        return jsonify({
            "message": "Stripe webhook endpoint (test mode)",
            "note": "Configure STRIPE_WEBHOOK_SECRET to enable real webhooks",
        })
    event = construct_event(body, request.headers.get("Stripe-Signature", ""), secret,
                            tolerance=svc.settings.WEBHOOK_TOLERANCE_SECONDS)
    if not svc.status.reachable:
        raise StoreUnavailable()
    result = svc.webhooks.process(event)
    return jsonify({"received": True, "handled": result.handled, "action": result.action})


@dev.post("/api/dev/reset-email")
@requires_store
def reset_email():
    email = _payload().get("email")
    if not email or not isinstance(email, str):
        raise InvalidInput("Email is required")
    removed = services().store.delete_by_email(normalize_email(email))
    logger.warning("dev reset removed %d license(s) for %s", removed, email)
    return jsonify({"success": True, "message": f"Email {email} reset successfully"})


def _register_error_handlers(app):
    @app.errorhandler(LicenseServerError)
    def handle_license_error(e):
        if isinstance(e, StoreUnavailable):
            logger.error("store unavailable while serving %s %s", request.method, request.path)
        return jsonify({"success": False, "error": e.message}), e.http_status

    @app.errorhandler(404)
    def handle_not_found(e):
        return jsonify({
            "success": False,
            "error": "Endpoint not found",
            "message": f"The endpoint {request.method} {request.path} does not exist",
        }), 404

    @app.errorhandler(429)
    def handle_rate_limited(e):
        return jsonify({
            "success": False,
            "error": "Too many license requests",
            "message": "Please wait before trying again",
        }), 429

    @app.errorhandler(Exception)
    def handle_unexpected(e):
        if isinstance(e, HTTPException):
            return jsonify({"success": False, "error": e.description}), e.code
        logger.exception("unhandled error on %s %s", request.method, request.path)
        return jsonify({"success": False, "error": "Internal server error"}), 500


def create_app(overrides=None, resolver=None, engine=None):
    settings = Settings(**(overrides or {}))
    logging.basicConfig(level=settings.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    app = Flask(__name__)
    app.config.update(
        MAX_CONTENT_LENGTH=settings.MAX_CONTENT_LENGTH,
        RATELIMIT_ENABLED=settings.RATELIMIT_ENABLED,
        RATELIMIT_DEFAULT=settings.RATELIMIT_DEFAULT,
        LICENSE_RATE_LIMIT=settings.LICENSE_RATE_LIMIT,
    )

    store = LicenseStore(engine if engine is not None else make_engine(settings))
    status = init_store(store)
    if not status.reachable:
        logger.warning("license routes will answer 503 until the database is reachable")
    app.extensions["license_server"] = Services(settings, store, status, resolver)

    app.register_blueprint(api)
    app.register_blueprint(licenses)
    app.register_blueprint(hooks)
    if settings.ENABLE_DEV_ROUTES:
        app.register_blueprint(dev)
    app.extensions["license_server"].limiter = init_limiter(app, limited=[licenses], exempt=[hooks])
    _register_error_handlers(app)
    return app
