from flask import current_app
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address


def _license_limit():
    return current_app.config["LICENSE_RATE_LIMIT"]


def init_limiter(app, limited=(), exempt=()):
    """Attach a rate limiter with its own in-memory counters to ``app``.

    Blueprints in ``limited`` get ``LICENSE_RATE_LIMIT``; those in ``exempt``
    are never counted. Everything else falls under ``RATELIMIT_DEFAULT``.
    """
    limiter = Limiter(get_remote_address, app=app, storage_uri="memory://")
    for bp in limited:
        limiter.limit(_license_limit)(bp)
    for bp in exempt:
        limiter.exempt(bp)
    return limiter
