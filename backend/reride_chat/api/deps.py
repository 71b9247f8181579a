"""
Request dependencies.

WHAT: Resolve the calling user from identity headers
WHY: Every chat operation is checked against who is asking
HOW: FastAPI Header parameters parsed into a Viewer
"""

from typing import Optional

from fastapi import Header
from pydantic import ValidationError

from ..models.chat import UserRole, Viewer
from ..utils.exceptions import MissingIdentityException


def get_viewer(
    x_user_email: Optional[str] = Header(default=None),
    x_user_role: Optional[str] = Header(default=None),
    x_user_name: Optional[str] = Header(default=None),
) -> Viewer:
    """
    Viewer for the current request.

    Raises:
        MissingIdentityException: headers absent or malformed (HTTP 401)
    """
    if not x_user_email or not x_user_email.strip():
        raise MissingIdentityException("X-User-Email header is missing")
    if not x_user_role:
        raise MissingIdentityException("X-User-Role header is missing")

    role = x_user_role.strip().lower()
    if role not in {r.value for r in UserRole}:
        raise MissingIdentityException(f"unknown role '{x_user_role}'")

    try:
        return Viewer(email=x_user_email, role=role, name=(x_user_name or "").strip())
    except ValidationError as e:
        raise MissingIdentityException(f"invalid identity ({e.error_count()} errors)") from e
