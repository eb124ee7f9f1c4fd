"""Pydantic schemas for the health and readiness endpoints."""

from __future__ import annotations

from pydantic import BaseModel


class HealthOut(BaseModel):
    status: str


class ReadyOut(BaseModel):
    """Readiness of the gateway to serve object requests."""

    status: str
    bucket: str
    detail: str | None = None
