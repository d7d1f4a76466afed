# Copyright (C) 2024 PortLib Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Disciplinary warning model."""

import enum

from sqlalchemy import Boolean, ForeignKey, Text
from sqlalchemy.orm import Mapped, mapped_column

from portlib_server.models.base import Base, enum_column
from portlib_server.models.timestamp import TimestampMixin


class WarningType(str, enum.Enum):
    OVERDUE = "overdue"
    NUISANCE = "nuisance"
    HARASSMENT = "harassment"
    HATE_SPEECH = "hate_speech"
    OTHER = "other"

    @property
    def label(self) -> str:
        return WARNING_TYPE_LABELS[self]


WARNING_TYPE_LABELS = {
    WarningType.OVERDUE: "Overdue Book Return",
    WarningType.NUISANCE: "Nuisance Behavior",
    WarningType.HARASSMENT: "Harassment",
    WarningType.HATE_SPEECH: "Hate Speech",
    WarningType.OTHER: "Other Violation",
}


class AccountWarning(Base, TimestampMixin):
    """Warning issued by staff. Only is_read changes after it is issued."""

    __tablename__ = "warnings"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    admin_id: Mapped[int | None] = mapped_column(
        ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True
    )
    type: Mapped[WarningType] = mapped_column(enum_column(WarningType), nullable=False, index=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
