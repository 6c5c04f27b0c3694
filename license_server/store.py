import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select, update, delete, func, text
from sqlalchemy import exc as sa_exc
from sqlalchemy.dialects import postgresql, sqlite

from .db import Base, make_session_factory
from .errors import Conflict, InvalidLicense, NotFound, StoreUnavailable
from .models import ACTIVE, CustomerLink, License, UserData, utcnow
from .security import mask_license_key

logger = logging.getLogger(__name__)

_DIALECT_INSERTS = {"postgresql": postgresql.insert, "sqlite": sqlite.insert}


@dataclass(frozen=True)
class StoreStatus:
    reachable: bool
    error: Optional[str] = None


def _is_unavailable(e) -> bool:
    if isinstance(e, (sa_exc.OperationalError, sa_exc.InterfaceError, sa_exc.TimeoutError)):
        return True
    return isinstance(e, sa_exc.DBAPIError) and bool(e.connection_invalidated)


class LicenseStore:
    """Access to the ``users``, ``user_data`` and ``customer_links`` tables.

    Every public method runs in its own transaction. Driver-level connection
    and timeout failures surface as ``StoreUnavailable``; they are never
    reported as a missing row.
    """

    def __init__(self, engine):
        self.engine = engine
        self._session_factory = make_session_factory(engine)
        try:
            self._insert = _DIALECT_INSERTS[engine.dialect.name]
        except KeyError:
            raise ValueError(f"unsupported database dialect: {engine.dialect.name}")

    @contextmanager
    def session(self):
        s = self._session_factory()
        try:
            yield s
            s.commit()
        except sa_exc.SQLAlchemyError as e:
            s.rollback()
            if _is_unavailable(e):
                logger.error("store unavailable: %s", e.__class__.__name__)
                raise StoreUnavailable() from e
            raise
        except Exception:
            s.rollback()
            raise
        finally:
            s.close()

    # -- lifecycle ---------------------------------------------------------

    def create_schema(self):
        Base.metadata.create_all(bind=self.engine)

    def ping(self) -> bool:
        with self.session() as s:
            s.execute(text("SELECT 1"))
        return True

    # -- licenses ----------------------------------------------------------

    def find_by_email(self, email: str) -> Optional[License]:
        with self.session() as s:
            q = select(License).where(func.lower(License.email) == email.lower()).order_by(License.id)
            return s.scalars(q).first()

    def find_by_license_key(self, key: str, active_only=False) -> Optional[License]:
        with self.session() as s:
            q = select(License).where(License.license_key == key)
            if active_only:
                q = q.where(License.status == ACTIVE)
            return s.scalars(q).first()

    def insert_license(self, key: str, email: str) -> License:
        lic, created = self.insert_or_get_license(key, email)
        if not created:
            raise Conflict()
        return lic

    def insert_or_get_license(self, key: str, email: str):
        """Insert an active license unless ``key`` exists; returns (license, created).

        A single INSERT .. ON CONFLICT DO NOTHING, so concurrent callers for the
        same key never both create a row.
        """
        with self.session() as s:
            stmt = (
                self._insert(License)
                .values(license_key=key, email=email, status=ACTIVE, plan_type="premium")
                .on_conflict_do_nothing(index_elements=["license_key"])
                .returning(License.id)
            )
            new_id = s.execute(stmt).scalar()
            if new_id is not None:
                logger.info("license created: %s", mask_license_key(key))
                return s.get(License, new_id), True
            return s.scalars(select(License).where(License.license_key == key)).one(), False

    def reactivate(self, email: str) -> License:
        with self.session() as s:
            res = s.execute(
                update(License)
                .where(func.lower(License.email) == email.lower())
                .values(status=ACTIVE, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            if not res.rowcount:
                raise NotFound()
            lic = s.scalars(
                select(License).where(func.lower(License.email) == email.lower()).order_by(License.id)
            ).first()
            logger.info("license reactivated: %s", mask_license_key(lic.license_key))
            return lic

    def set_status_by_email(self, email: str, status: str) -> int:
        with self.session() as s:
            res = s.execute(
                update(License)
                .where(func.lower(License.email) == email.lower())
                .values(status=status, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            return res.rowcount

    def activate_license(self, key: str, email: str) -> License:
        """Bind a caller-supplied key to ``email``.

        Re-activating an inactive key bound to the same email is allowed. An
        active key, a key bound to another address, or an email that already
        owns a different key is a ``Conflict``.
        """
        with self.session() as s:
            owned = s.scalars(
                select(License.license_key)
                .where(func.lower(License.email) == email.lower())
                .order_by(License.id)
            ).first()
            if owned is not None and owned != key:
                logger.info("email already owns license %s", mask_license_key(owned))
                raise Conflict("Email already has a license")
            stmt = (
                self._insert(License)
                .values(license_key=key, email=email, status=ACTIVE, plan_type="premium")
                .on_conflict_do_nothing(index_elements=["license_key"])
                .returning(License.id)
            )
            new_id = s.execute(stmt).scalar()
            if new_id is not None:
                return s.get(License, new_id)
            lic = s.scalars(select(License).where(License.license_key == key)).one()
            if (lic.email or "").lower() != email.lower() or lic.is_active:
                raise Conflict()
            s.execute(
                update(License)
                .where(License.license_key == key)
                .values(status=ACTIVE, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            s.refresh(lic)
            return lic

    def delete_by_email(self, email: str) -> int:
        with self.session() as s:
            res = s.execute(delete(License).where(func.lower(License.email) == email.lower()))
            return res.rowcount

    # -- user data ---------------------------------------------------------

    def upsert_user_data(self, key: str, data_type: str, content):
        with self.session() as s:
            # row lock keeps a concurrent deactivation from slipping in before the write
            owner = s.scalars(
                select(License.id)
                .where(License.license_key == key, License.status == ACTIVE)
                .with_for_update()
            ).first()
            if owner is None:
                raise InvalidLicense()
            now = utcnow()
            stmt = self._insert(UserData).values(
                license_key=key, data_type=data_type, content=content, created_at=now, updated_at=now)
            stmt = stmt.on_conflict_do_update(
                index_elements=["license_key", "data_type"],
                set_={"content": stmt.excluded.content, "updated_at": now},
            ).returning(UserData.created_at, UserData.updated_at)
            row = s.execute(stmt).one()
            logger.info("data saved for license: %s (%s)", mask_license_key(key), data_type)
            return {"created_at": row.created_at, "updated_at": row.updated_at}

    def get_user_data(self, key: str, data_type: str):
        with self.session() as s:
            row = s.execute(
                select(UserData.content, UserData.updated_at)
                .where(UserData.license_key == key, UserData.data_type == data_type)
            ).first()
            if row is None:
                return None
            return {"content": row.content, "updated_at": row.updated_at}

    # -- payment customers -------------------------------------------------

    def link_customer(self, customer_id: str, email: str):
        with self.session() as s:
            now = utcnow()
            stmt = self._insert(CustomerLink).values(
                customer_id=customer_id, email=email, created_at=now, updated_at=now)
            s.execute(stmt.on_conflict_do_update(
                index_elements=["customer_id"],
                set_={"email": stmt.excluded.email, "updated_at": now},
            ))

    def email_for_customer(self, customer_id: str) -> Optional[str]:
        with self.session() as s:
            return s.scalars(
                select(CustomerLink.email).where(CustomerLink.customer_id == customer_id)
            ).first()


def init_store(store: LicenseStore) -> StoreStatus:
    try:
        store.ping()
        store.create_schema()
    except (StoreUnavailable, sa_exc.SQLAlchemyError) as e:
        logger.error("database initialization failed: %s", e)
        return StoreStatus(reachable=False, error=str(e))
    logger.info("database initialized")
    return StoreStatus(reachable=True)
