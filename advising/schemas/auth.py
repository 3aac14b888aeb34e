"""Pydantic schemas for the authenticated session."""

from pydantic import BaseModel


class UserSession(BaseModel):
    """Identity carried by a verified session token."""

    user_id: str
    email: str
    name: str | None = None
