"""
Request-scoped session objects and the per-request registry.

The registry lives on ``request.state`` so that every dependency and endpoint
handling one request sees the same ``Session`` instance for a given name, and
the store loads it from the database at most once.
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, Literal, Optional

from starlette.requests import HTTPConnection
from starlette.responses import Response

if TYPE_CHECKING:  # pragma: no cover
    from ormsession.store import SessionStore

logger = logging.getLogger(__name__)

_EXPIRED = datetime(1970, 1, 1, 0, 0, 1, tzinfo=timezone.utc)

DEFAULT_MAX_AGE = 86400 * 30

REGISTRY_STATE_KEY = "session_registry"


@dataclass
class CookieOptions:
    """Cookie attributes for one session. Negative ``max_age`` deletes the session."""

    path: str = "/"
    domain: Optional[str] = None
    max_age: int = DEFAULT_MAX_AGE
    secure: bool = False
    http_only: bool = True
    same_site: Optional[Literal["lax", "strict", "none"]] = "lax"

    def copy(self) -> "CookieOptions":
        return replace(self)


@dataclass
class Session:
    """Server-side state for one cookie name on one request."""

    name: str
    store: "SessionStore" = field(repr=False)
    id: str = ""
    values: Dict[str, Any] = field(default_factory=dict, repr=False)
    is_new: bool = True
    options: CookieOptions = field(default_factory=CookieOptions)

    def save(self, request: HTTPConnection, response: Response) -> None:
        """Persist this session and set its cookie on ``response``."""
        self.store.save(request, response, self)

    def clear(self) -> None:
        self.values.clear()

    def invalidate(self) -> None:
        """Mark the session for deletion on the next save (logout)."""
        self.values.clear()
        self.options.max_age = -1


def set_session_cookie(response: Response, name: str, value: str, options: CookieOptions) -> None:
    """Write a session cookie with the attributes from ``options``."""
    kwargs: Dict[str, Any] = {
        "path": options.path,
        "domain": options.domain,
        "secure": options.secure,
        "httponly": options.http_only,
        "samesite": options.same_site,
    }
    if options.max_age < 0:
        response.set_cookie(name, "", max_age=0, expires=_EXPIRED, **kwargs)
    elif options.max_age > 0:
        response.set_cookie(name, value, max_age=options.max_age, expires=options.max_age, **kwargs)
    else:
        # Browser-session cookie
        response.set_cookie(name, value, **kwargs)


class SessionRegistry:
    """Caches sessions per name for the lifetime of one request."""

    def __init__(self, request: HTTPConnection):
        self.request = request
        self._sessions: Dict[str, Session] = {}

    def get(self, store: "SessionStore", name: str) -> Session:
        session = self._sessions.get(name)
        if session is None:
            session = store.new(self.request, name)
            self._sessions[name] = session
        return session

    def __contains__(self, name: str) -> bool:
        return name in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def save(self, response: Response) -> None:
        """
        Save every session loaded during this request.

        All sessions are attempted; the first failure is re-raised afterwards.
        """
        first_error: Optional[Exception] = None
        for name, session in self._sessions.items():
            try:
                session.save(self.request, response)
            except Exception as e:
                logger.error(f"Failed to save session {name!r}: {e}")
                if first_error is None:
                    first_error = e
        if first_error is not None:
            raise first_error


def get_registry(request: HTTPConnection) -> SessionRegistry:
    """Return the registry attached to ``request``, creating it on first use."""
    registry = getattr(request.state, REGISTRY_STATE_KEY, None)
    if registry is None:
        registry = SessionRegistry(request)
        setattr(request.state, REGISTRY_STATE_KEY, registry)
    return registry


def save_sessions(request: HTTPConnection, response: Response) -> None:
    """Save all sessions registered on ``request``."""
    get_registry(request).save(response)
