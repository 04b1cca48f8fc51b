"""
Cookie-based sessions.

Every routed request gets a session. A request without a known `session`
cookie gets a fresh one and the response carries

    Set-Cookie: session=<token>; Path=/; HttpOnly

Handlers log a user in with ctx.set_session(user) and out with
ctx.destroy_session(); both live on RequestContext and use the same store.
"""

import logging

from .base import BeforeMiddleware, CONTINUE, Flow
from ..stores import SESSION_COOKIE

logger = logging.getLogger(__name__)


class SessionMiddleware(BeforeMiddleware):

    def __init__(self, cookie_name: str = SESSION_COOKIE):
        self.cookie_name = cookie_name

    def __call__(self, ctx) -> Flow:
        sessions = ctx.stores.sessions
        token = ctx.request.cookies.get(self.cookie_name)
        session = sessions.get(token)

        if session is None:
            session = sessions.create()
            ctx.stores.metrics.session_opened()
            ctx.response.set_header(
                "Set-Cookie", f"{self.cookie_name}={session.id}; Path=/; HttpOnly"
            )
            logger.debug(f"Started session for {ctx.request.client_address[0]}")

        ctx.session = session
        ctx.state["session_cookie"] = self.cookie_name
        return CONTINUE
