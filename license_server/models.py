from sqlalchemy import Column, Integer, String, DateTime, JSON, ForeignKey, UniqueConstraint
from datetime import datetime, timezone
from .db import Base

ACTIVE = "active"
INACTIVE = "inactive"
DATA_TYPE_MAX_LENGTH = 50


def utcnow():
    return datetime.now(timezone.utc)


class License(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True)
    license_key = Column(String(255), unique=True, nullable=False, index=True)
    # no unique index on email, the reconciler keeps it one-license-per-address
    email = Column(String(255), index=True)
    status = Column(String(50), nullable=False, default=ACTIVE, server_default=ACTIVE)
    plan_type = Column(String(50), nullable=False, default="premium", server_default="premium")
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    @property
    def is_active(self) -> bool:
        return self.status == ACTIVE

    def to_public(self):
        return {
            "email": self.email,
            "plan": self.plan_type,
            "status": self.status,
            "activated": self.created_at.isoformat() if self.created_at else None,
        }


class UserData(Base):
    __tablename__ = "user_data"
    id = Column(Integer, primary_key=True)
    license_key = Column(String(255), ForeignKey("users.license_key", ondelete="CASCADE"),
                         nullable=False, index=True)
    data_type = Column(String(DATA_TYPE_MAX_LENGTH), nullable=False, default="notes", server_default="notes")
    content = Column(JSON)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    __table_args__ = (UniqueConstraint("license_key", "data_type", name="uniq_user_data_type"),)


class CustomerLink(Base):
    __tablename__ = "customer_links"
    customer_id = Column(String(255), primary_key=True)
    email = Column(String(255), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
