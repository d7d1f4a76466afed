# Copyright (C) 2024 PortLib Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Database models."""

from portlib_server.models.base import Base
from portlib_server.models.account import (
    ACCOUNT_CLASSES,
    Account,
    AccountStatus,
    Admin,
    Librarian,
    Role,
    Student,
)
from portlib_server.models.one_time_code import OneTimeCode, OtpPurpose
from portlib_server.models.warning import AccountWarning, WarningType
from portlib_server.models.admin_key import AdminKey

__all__ = [
    "Base",
    "ACCOUNT_CLASSES",
    "Account",
    "AccountStatus",
    "Admin",
    "Librarian",
    "Role",
    "Student",
    "OneTimeCode",
    "OtpPurpose",
    "AccountWarning",
    "WarningType",
    "AdminKey",
]
