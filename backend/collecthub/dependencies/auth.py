"""Shared-secret guards for the worker protocol and operator endpoints."""

import secrets

from fastapi import Depends, HTTPException, Request

from collecthub.config import Settings, get_settings


def _bearer(request: Request) -> str:
    auth = request.headers.get("authorization", "")
    if auth[:7].lower() == "bearer ":
        return auth[7:].strip()
    return ""


def _matches(expected: str, provided: str) -> bool:
    """Constant-time compare; an unset secret never matches."""
    if not expected or not provided:
        return False
    return secrets.compare_digest(expected.encode("utf-8"), provided.encode("utf-8"))


def get_app_settings(request: Request) -> Settings:
    return getattr(request.app.state, "settings", None) or get_settings()


async def require_collector(request: Request, settings: Settings = Depends(get_app_settings)) -> None:
    """Worker pull protocol: bearer token or ``x-collector-token`` header."""
    provided = _bearer(request) or request.headers.get("x-collector-token", "").strip()
    if not _matches(settings.collector_worker_token.strip(), provided):
        raise HTTPException(status_code=401, detail="Invalid collector token")


async def require_admin(request: Request, settings: Settings = Depends(get_app_settings)) -> None:
    """Operator endpoints: ``X-Admin-Token`` header or bearer token."""
    provided = request.headers.get("x-admin-token", "").strip() or _bearer(request)
    if not _matches(settings.admin_token.strip(), provided):
        raise HTTPException(status_code=401, detail="Admin token required")
