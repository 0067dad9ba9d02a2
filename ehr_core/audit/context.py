# ehr_core/audit/context.py
from __future__ import annotations

import ipaddress
from dataclasses import dataclass
from typing import Optional

from ehr_core.audit.constants import SYSTEM_USER_ID
from ehr_core.common.permissions import primary_role

USER_AGENT_MAX_LENGTH = 512
SESSION_ID_HEADER = "HTTP_X_SESSION_ID"


@dataclass(frozen=True)
class Subject:
    """The entity acted upon, e.g. Subject("patient", "<uuid>")."""
    type: str
    id: str

    def __post_init__(self):
        object.__setattr__(self, "id", str(self.id))


@dataclass(frozen=True)
class Outcome:
    success: bool
    error_message: Optional[str] = None

    @classmethod
    def ok(cls) -> "Outcome":
        return cls(success=True)

    @classmethod
    def failed(cls, error_message: str) -> "Outcome":
        return cls(success=False, error_message=error_message)


@dataclass(frozen=True)
class ActorContext:
    """
    Who acted and from where, captured once at the request boundary.
    role is the point-in-time role, never looked up again later.
    """
    user_id: str
    display_name: str
    role: Optional[str]
    source_ip: Optional[str] = None
    user_agent: Optional[str] = None
    session_id: Optional[str] = None


SYSTEM_ACTOR = ActorContext(user_id=SYSTEM_USER_ID, display_name="System", role="SYSTEM")


def _valid_ip(value: str | None) -> Optional[str]:
    if not value:
        return None
    try:
        return str(ipaddress.ip_address(value.strip()))
    except ValueError:
        return None


def client_ip(request) -> Optional[str]:
    """
    First valid address in X-Forwarded-For, else REMOTE_ADDR.
    Best effort: returns None rather than a malformed string.
    """
    meta = getattr(request, "META", {}) or {}
    forwarded = meta.get("HTTP_X_FORWARDED_FOR") or ""
    for part in forwarded.split(","):
        ip = _valid_ip(part)
        if ip:
            return ip
    return _valid_ip(meta.get("REMOTE_ADDR"))


def _session_id(request) -> Optional[str]:
    meta = getattr(request, "META", {}) or {}
    explicit = (meta.get(SESSION_ID_HEADER) or "").strip()
    if explicit:
        return explicit[:128]
    session = getattr(request, "session", None)
    key = getattr(session, "session_key", None) if session is not None else None
    return key or None


def _display_name(user) -> str:
    full = ""
    if hasattr(user, "get_full_name"):
        full = (user.get_full_name() or "").strip()
    if full:
        return full
    if hasattr(user, "get_username"):
        return user.get_username()
    return str(user)


def actor_from_request(request) -> ActorContext:
    """
    Resolve the acting user once. Downstream code only ever sees ActorContext.
    Unauthenticated requests resolve to an anonymous actor (still audited).
    """
    meta = getattr(request, "META", {}) or {}
    user_agent = (meta.get("HTTP_USER_AGENT") or "")[:USER_AGENT_MAX_LENGTH] or None

    user = getattr(request, "user", None)
    if user is None or not getattr(user, "is_authenticated", False):
        return ActorContext(
            user_id="anonymous",
            display_name="Anonymous",
            role=None,
            source_ip=client_ip(request),
            user_agent=user_agent,
            session_id=_session_id(request),
        )

    return ActorContext(
        user_id=str(user.pk),
        display_name=_display_name(user),
        role=primary_role(user),
        source_ip=client_ip(request),
        user_agent=user_agent,
        session_id=_session_id(request),
    )
