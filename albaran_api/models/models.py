import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    String,
    DateTime,
    Boolean,
    ForeignKey,
    Integer,
    Float,
    JSON,
    UniqueConstraint,
    Text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship, Mapped, mapped_column

from ..db import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def uuid_pk() -> Mapped[uuid.UUID]:
    return mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)


class SoftDeleteMixin:
    """Archive marker pair shared by every archivable table."""

    deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, index=True)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))


class Company(Base):
    __tablename__ = "companies"

    id: Mapped[uuid.UUID] = uuid_pk()
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    cif: Mapped[Optional[str]] = mapped_column(String(50))
    address: Mapped[Optional[dict]] = mapped_column(JSON)  # {street, number, postal, city}
    founder_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), onupdate=utcnow)


class User(SoftDeleteMixin, Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = uuid_pk()
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(20), default="user", nullable=False)  # user|admin|guest
    validated: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    company_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("companies.id"), index=True)
    company_role: Mapped[Optional[str]] = mapped_column(String(20))  # owner|admin|user
    profile_picture: Mapped[Optional[str]] = mapped_column(String(500))
    # Email verification
    verification_code: Mapped[Optional[str]] = mapped_column(String(12))
    verification_expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    verification_attempts: Mapped[int] = mapped_column(Integer, default=3, nullable=False)
    # Password recovery
    reset_token: Mapped[Optional[str]] = mapped_column(String(12), index=True)
    reset_expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), onupdate=utcnow)

    company = relationship("Company", foreign_keys=[company_id], lazy="joined")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class Invitation(Base):
    """One row per invitation; "received" and "sent" are views over invitee/inviter."""

    __tablename__ = "invitations"

    id: Mapped[uuid.UUID] = uuid_pk()
    inviter_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), index=True)
    invitee_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), index=True)
    company_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("companies.id", ondelete="CASCADE"))
    company_name: Mapped[str] = mapped_column(String(255), nullable=False)  # snapshot at send time
    status: Mapped[str] = mapped_column(String(20), default="pending", nullable=False)  # pending|accepted|rejected
    role: Mapped[str] = mapped_column(String(20), default="user", nullable=False)  # invited|admin|user
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), onupdate=utcnow)

    inviter = relationship("User", foreign_keys=[inviter_id], lazy="joined")
    invitee = relationship("User", foreign_keys=[invitee_id], lazy="joined")

    @property
    def inviter_email(self) -> Optional[str]:
        return self.inviter.email if self.inviter else None

    @property
    def invitee_email(self) -> Optional[str]:
        return self.invitee.email if self.invitee else None


class Client(SoftDeleteMixin, Base):
    __tablename__ = "clients"

    id: Mapped[uuid.UUID] = uuid_pk()
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    nif: Mapped[Optional[str]] = mapped_column(String(50))
    address: Mapped[Optional[dict]] = mapped_column(JSON)  # {street, number, postal, city}
    email: Mapped[Optional[str]] = mapped_column(String(255))
    phone: Mapped[Optional[str]] = mapped_column(String(50))
    # Ownership snapshot taken at creation time
    created_by: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    company_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), onupdate=utcnow)


class Project(SoftDeleteMixin, Base):
    __tablename__ = "projects"

    id: Mapped[uuid.UUID] = uuid_pk()
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(String(2000))
    client_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("clients.id"), nullable=False, index=True)
    created_by: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    company_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), index=True)
    start_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), default=utcnow)
    end_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    status: Mapped[str] = mapped_column(String(20), default="pending", nullable=False)  # pending|in-progress|completed|cancelled
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), onupdate=utcnow)

    client = relationship("Client", lazy="joined")


class DeliveryNote(SoftDeleteMixin, Base):
    __tablename__ = "delivery_notes"

    id: Mapped[uuid.UUID] = uuid_pk()
    number: Mapped[str] = mapped_column(String(20), nullable=False, index=True)  # ALB-YYYY-NNNN
    project_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("projects.id"), nullable=False, index=True)
    created_by: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    company_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), index=True)
    date: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    worked_hours: Mapped[list] = mapped_column(JSON, default=list)  # [{person, hours, date, hourly_rate, description}]
    materials: Mapped[list] = mapped_column(JSON, default=list)  # [{name, quantity, price, description}]
    status: Mapped[str] = mapped_column(String(20), default="draft", nullable=False)  # draft|pending|signed|cancelled
    signature_image: Mapped[Optional[str]] = mapped_column(String(500))
    signature_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    signature_signer: Mapped[Optional[str]] = mapped_column(String(255))
    pdf_url: Mapped[Optional[str]] = mapped_column(String(500))
    observations: Mapped[Optional[str]] = mapped_column(Text)
    total_amount: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), onupdate=utcnow)

    project = relationship("Project", lazy="joined")

    @property
    def signature(self) -> Optional[dict]:
        if not self.signature_image and not self.signature_date:
            return None
        return {
            "image": self.signature_image,
            "date": self.signature_date,
            "signer": self.signature_signer,
        }


class DocumentCounter(Base):
    """Last sequence issued per (owner scope, year); bumped with a single UPDATE."""

    __tablename__ = "document_counters"
    __table_args__ = (UniqueConstraint("scope_key", "year", name="uq_counter_scope_year"),)

    id: Mapped[uuid.UUID] = uuid_pk()
    scope_key: Mapped[str] = mapped_column(String(80), nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    value: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
