import json
import logging
from dataclasses import dataclass
from typing import Optional

from .errors import InvalidInput, WebhookVerificationFailed
from .models import ACTIVE, INACTIVE
from .security import verify_webhook_signature

logger = logging.getLogger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"
SUBSCRIPTION_CREATED = "customer.subscription.created"
SUBSCRIPTION_UPDATED = "customer.subscription.updated"
SUBSCRIPTION_DELETED = "customer.subscription.deleted"
PAYMENT_SUCCEEDED = "invoice.payment_succeeded"


@dataclass(frozen=True)
class WebhookResult:
    event_type: str
    handled: bool
    action: str
    email: Optional[str] = None
    flagged: Optional[str] = None


def parse_event(body_bytes: bytes) -> dict:
    try:
        event = json.loads(body_bytes or b"")
    except (ValueError, UnicodeDecodeError):
        raise InvalidInput("Malformed webhook payload")
    if not isinstance(event, dict) or not isinstance(event.get("type"), str):
        raise InvalidInput("Malformed webhook payload")
    data = event.get("data")
    if not isinstance(data, dict) or not isinstance(data.get("object"), dict):
        raise InvalidInput("Malformed webhook payload")
    return event


def construct_event(body_bytes: bytes, header_signature: str, secret: str, tolerance=300) -> dict:
    """Verify the signature header and parse the envelope; nothing is parsed on failure."""
    if not verify_webhook_signature(body_bytes, header_signature, secret, tolerance=tolerance):
        logger.warning("webhook signature verification failed")
        raise WebhookVerificationFailed()
    return parse_event(body_bytes)


class WebhookProcessor:
    """Applies payment-provider events to license status.

    ``resolver`` maps a customer id to an email (or None). Subscription and
    invoice events whose customer cannot be resolved change nothing.
    """

    def __init__(self, store, reconciler, resolver=None):
        self.store = store
        self.reconciler = reconciler
        self.resolver = resolver or (lambda customer_id: None)
        self._handlers = {
            CHECKOUT_COMPLETED: self._checkout_completed,
            SUBSCRIPTION_CREATED: self._subscription_created,
            SUBSCRIPTION_UPDATED: self._subscription_updated,
            SUBSCRIPTION_DELETED: self._subscription_deleted,
            PAYMENT_SUCCEEDED: self._payment_succeeded,
        }

    def process(self, event: dict) -> WebhookResult:
        kind = event.get("type")
        obj = event["data"]["object"]
        logger.info("webhook received: %s (%s)", kind, event.get("id"))
        handler = self._handlers.get(kind)
        if handler is None:
            logger.info("unhandled event type: %s", kind)
            return WebhookResult(kind, False, "ignored")
        return handler(kind, obj)

    def _checkout_completed(self, kind, session):
        email = (session.get("customer_details") or {}).get("email") or session.get("customer_email")
        if not email:
            logger.error("no customer email in checkout session %s", session.get("id"))
            return WebhookResult(kind, True, "missing_email")
        try:
            grant = self.reconciler.ensure_active_license(email)
        except InvalidInput:
            logger.error("invalid customer email in checkout session %s", session.get("id"))
            return WebhookResult(kind, True, "invalid_email")
        if session.get("customer"):
            self.store.link_customer(session["customer"], grant.email)
        return WebhookResult(kind, True, grant.action, email=grant.email)

    def _subscription_created(self, kind, subscription):
        logger.info("subscription %s status: %s", subscription.get("id"), subscription.get("status"))
        return WebhookResult(kind, True, "logged")

    def _subscription_updated(self, kind, subscription):
        status = subscription.get("status")
        if status == "active":
            return self._set_status(kind, subscription, ACTIVE)
        if status == "canceled":
            return self._set_status(kind, subscription, INACTIVE)
        if status == "past_due":
            logger.warning("subscription past due for customer: %s", subscription.get("customer"))
            return WebhookResult(kind, True, "unchanged", flagged="past_due")
        logger.info("subscription %s moved to %s, license unchanged", subscription.get("id"), status)
        return WebhookResult(kind, True, "unchanged")

    def _subscription_deleted(self, kind, subscription):
        return self._set_status(kind, subscription, INACTIVE)

    def _payment_succeeded(self, kind, invoice):
        if invoice.get("subscription"):
            logger.info("recurring payment for customer: %s", invoice.get("customer"))
        return WebhookResult(kind, True, "logged")

    def _set_status(self, kind, obj, status):
        customer_id = obj.get("customer")
        email = self.resolver(customer_id)
        if not email:
            logger.info("customer %s not linked to a license, %s ignored", customer_id, kind)
            return WebhookResult(kind, True, "unresolved")
        if not self.store.set_status_by_email(email, status):
            logger.info("no license for %s, %s ignored", email, kind)
            return WebhookResult(kind, True, "no_license", email=email)
        logger.info("license for %s set %s", email, status)
        return WebhookResult(kind, True, "activated" if status == ACTIVE else "deactivated", email=email)
