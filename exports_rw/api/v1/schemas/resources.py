"""Pydantic schemas for the resource endpoints."""

from __future__ import annotations

from pydantic import BaseModel


class MessageOut(BaseModel):
    """Plain status message returned by write endpoints."""

    message: str


class ReadinessOut(BaseModel):
    status: str
    detail: dict[str, str] | None = None
