import logging

import requests

logger = logging.getLogger(__name__)


def fetch_customer(customer_id: str, secret_key: str, api_base="https://api.stripe.com", timeout=20):
    url = f"{api_base.rstrip('/')}/v1/customers/{customer_id}"
    headers = {"Authorization": f"Bearer {secret_key}"}
    r = requests.get(url, headers=headers, timeout=timeout)
    r.raise_for_status()
    return r.json()


class CustomerResolver:
    """Maps a payment-provider customer id to the email that owns the license.

    Looks in the local ``customer_links`` table first and falls back to the
    provider API when a secret key is configured. Returns None when the id
    cannot be resolved; callers treat that as a no-op event.
    """

    def __init__(self, store, secret_key="", api_base="https://api.stripe.com", timeout=20):
        self.store = store
        self.secret_key = secret_key
        self.api_base = api_base
        self.timeout = timeout

    def __call__(self, customer_id):
        if not customer_id:
            return None
        email = self.store.email_for_customer(customer_id)
        if email or not self.secret_key:
            return email
        try:
            customer = fetch_customer(customer_id, self.secret_key, self.api_base, self.timeout)
        except requests.RequestException as e:
            logger.warning("customer lookup failed for %s: %s", customer_id, e)
            return None
        email = (customer.get("email") or "").strip().lower()
        if not email:
            return None
        self.store.link_customer(customer_id, email)
        return email
