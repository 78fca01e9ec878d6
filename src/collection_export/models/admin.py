"""Admin model — a privileged principal that bypasses collection access rules."""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from collection_export.models.base import Base, RecordIdMixin, TimestampMixin


class Admin(Base, RecordIdMixin, TimestampMixin):
    """Privileged administrator account."""

    __tablename__ = "admins"

    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
