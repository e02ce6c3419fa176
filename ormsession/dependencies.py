"""
FastAPI integration.

Attach a store to ``app.state.session_store`` and inject sessions into
endpoints with ``Depends(session_dependency("name"))``. Sessions are saved
either explicitly (``session.save(request, response)``) or for every loaded
session by ``SessionStoreMiddleware``.
"""

import logging
from typing import Callable

from fastapi import Depends, Request
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware

from ormsession.sessions import REGISTRY_STATE_KEY, Session, save_sessions
from ormsession.store import SessionStore

logger = logging.getLogger(__name__)


def get_session_store(request: Request) -> SessionStore:
    """Dependency returning the store configured on the application"""
    store = getattr(request.app.state, "session_store", None)
    if store is None:
        raise RuntimeError("No session store configured on app.state.session_store")
    return store


def session_dependency(name: str) -> Callable[..., Session]:
    """Build a dependency that yields the session called ``name``."""

    def dependency(request: Request, store: SessionStore = Depends(get_session_store)) -> Session:
        return store.get(request, name)

    dependency.__name__ = f"session_{name}"
    return dependency


class SessionStoreMiddleware(BaseHTTPMiddleware):
    """
    Save every session the endpoint loaded once the response is ready.

    Saving happens before the response body is sent, so a failed save still
    surfaces as a server error rather than a silently lost session.
    """

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        registry = getattr(request.state, REGISTRY_STATE_KEY, None)
        if registry is None or not len(registry):
            return response

        logger.debug("Saving %d session(s) after %s", len(registry), request.url.path)
        await run_in_threadpool(save_sessions, request, response)
        return response
