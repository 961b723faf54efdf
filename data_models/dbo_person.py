"""Data models for the canonical person and its external identity links."""

from datetime import datetime
from typing import Any

from sqlalchemy import String, ForeignKey, UniqueConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, TimestampMixin, new_uuid, utcnow
from .growth_enums import IdentityProvider, enum_column


class Person(Base, TimestampMixin):
    """
    Canonical, deduplicated identity behind every channel-specific user
    representation. Email is the primary matching key when present.
    """

    __tablename__ = "person"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)

    # Contact Info
    email: Mapped[str | None] = mapped_column(String(255), unique=True)
    phone: Mapped[str | None] = mapped_column(String(20))
    name: Mapped[str | None] = mapped_column(String(255))

    # Merged (never replaced) on repeated identification
    traits: Mapped[dict[str, Any]] = mapped_column(default=dict)

    identity_links: Mapped[list["IdentityLink"]] = relationship(
        back_populates="person", cascade="all, delete-orphan", lazy="selectin"
    )

    @property
    def first_name(self) -> str | None:
        if not self.name:
            return None
        return self.name.split()[0]

    def __repr__(self) -> str:
        return f"<Person {self.id} email={self.email!r}>"


class IdentityLink(Base):
    __tablename__ = "identity_link"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    person_id: Mapped[str] = mapped_column(
        ForeignKey("person.id", ondelete="CASCADE"), nullable=False
    )
    provider: Mapped[IdentityProvider] = mapped_column(
        enum_column(IdentityProvider, "identity_provider"), nullable=False
    )
    external_id: Mapped[str] = mapped_column(String(255), nullable=False)
    metadata_: Mapped[dict[str, Any] | None] = mapped_column("metadata")
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    person: Mapped[Person] = relationship(back_populates="identity_links")

    __table_args__ = (
        # A (provider, external_id) pair resolves to exactly one person
        UniqueConstraint("provider", "external_id", name="uq_identity_link_provider_external"),
        Index("idx_identity_link_person", "person_id"),
    )
