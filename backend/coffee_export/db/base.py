"""SQLAlchemy declarative base and the mixins every record row shares."""

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, Integer
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from coffee_export.core.exceptions import VersionConflictError


class Base(DeclarativeBase):
    pass


class TimestampMixin:
    """Audit timestamps mirrored from the stored record, never set by the database."""

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)


class VersionMixin:
    """Optimistic locking counter.

    A row is written at version 1 and every accepted write bumps it. A writer
    states the version its copy was read at; ``check_version`` refuses the
    write when the row has moved on since.
    """

    version: Mapped[int] = mapped_column(Integer, default=1, server_default="1", nullable=False)

    def check_version(self, entity: str, expected: Optional[int]) -> None:
        if expected is not None and expected != self.version:
            raise VersionConflictError(entity, getattr(self, "id", "?"), expected, self.version)

    def increment_version(self) -> None:
        self.version += 1


class SoftDeleteMixin:
    """Rows are hidden, never removed; business codes stay reserved while hidden."""

    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, server_default="0", nullable=False, index=True)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    def soft_delete(self, moment: datetime) -> None:
        self.is_deleted = True
        self.deleted_at = moment

    def restore(self) -> None:
        self.is_deleted = False
        self.deleted_at = None

    @classmethod
    def not_deleted(cls):
        return cls.is_deleted.is_(False)
