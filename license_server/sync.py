import logging
from dataclasses import dataclass

from .errors import InvalidInput, InvalidLicense
from .models import DATA_TYPE_MAX_LENGTH
from .security import mask_license_key

logger = logging.getLogger(__name__)

DEFAULT_DATA_TYPE = "notes"


@dataclass(frozen=True)
class SyncedData:
    content: object
    last_modified: object


def clean_data_type(data_type) -> str:
    if data_type is None or data_type == "":
        return DEFAULT_DATA_TYPE
    if not isinstance(data_type, str):
        raise InvalidInput("Invalid data type")
    data_type = data_type.strip()
    if not data_type or len(data_type) > DATA_TYPE_MAX_LENGTH:
        raise InvalidInput("Invalid data type")
    return data_type


class DataSyncGate:
    """Last-write-wins content blobs, readable and writable by active licenses only."""

    def __init__(self, store):
        self.store = store

    def _require_active(self, key):
        if not key or self.store.find_by_license_key(key, active_only=True) is None:
            logger.info("sync refused for license %s", mask_license_key(key))
            raise InvalidLicense()

    def upload(self, key, data_type, content):
        data_type = clean_data_type(data_type)
        self._require_active(key)
        # the store re-checks the license inside the write transaction
        row = self.store.upsert_user_data(key, data_type, content)
        return row["updated_at"] or row["created_at"]

    def download(self, key, data_type=DEFAULT_DATA_TYPE):
        data_type = clean_data_type(data_type)
        self._require_active(key)
        row = self.store.get_user_data(key, data_type)
        if row is None:
            return None
        return SyncedData(row["content"], row["updated_at"])
