# Copyright (C) 2024 PortLib Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Admin signup key model."""

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from portlib_server.models.base import Base
from portlib_server.models.timestamp import TimestampMixin


class AdminKey(Base, TimestampMixin):
    """Single-use key required to sign up as an admin. Minted with portlib_server.scripts.create_admin_key."""

    __tablename__ = "admin_keys"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    key_value: Mapped[str] = mapped_column(String(128), unique=True, nullable=False, index=True)
    is_used: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
