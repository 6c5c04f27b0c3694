import logging
from dataclasses import dataclass

from .errors import InvalidInput, LicenseGenerationConflict, NotFound
from .models import ACTIVE
from .security import derive_license_key, is_valid_email, mask_license_key, normalize_email

logger = logging.getLogger(__name__)

CREATED = "created"
EXISTING = "existing"
REACTIVATED = "reactivated"


@dataclass(frozen=True)
class LicenseGrant:
    license_key: str
    status: str
    created: bool
    action: str
    email: str
    created_at: object = None


class LicenseReconciler:
    """Decides whether a license request creates, reactivates or returns a key."""

    def __init__(self, store, deriver=derive_license_key):
        self.store = store
        self.derive = deriver

    def request_license(self, email: str) -> LicenseGrant:
        if not is_valid_email(email):
            raise InvalidInput("Invalid email format")
        email = normalize_email(email)

        lic = self.store.find_by_email(email)
        if lic is not None:
            return self._existing(lic, email)

        key = self.derive(email)
        lic, created = self.store.insert_or_get_license(key, email)
        if (lic.email or "").lower() != email:
            logger.error("derived key %s already belongs to another email", mask_license_key(key))
            raise LicenseGenerationConflict()
        if created:
            logger.info("new license %s issued", mask_license_key(key))
            return LicenseGrant(lic.license_key, lic.status, True, CREATED, email, lic.created_at)
        # lost the insert race to a concurrent request for the same email
        return self._existing(lic, email)

    # checkout events run through the same find-or-create path
    ensure_active_license = request_license

    def _existing(self, lic, email) -> LicenseGrant:
        if lic.status == ACTIVE:
            return LicenseGrant(lic.license_key, lic.status, False, EXISTING, email, lic.created_at)
        try:
            lic = self.store.reactivate(email)
        except NotFound:
            # deleted between lookup and update; start over
            return self.request_license(email)
        return LicenseGrant(lic.license_key, lic.status, False, REACTIVATED, email, lic.created_at)
