"""
Per-request context handed to every middleware and route handler.

A RequestContext is created by the server for each routed request and
dropped once the response has been written. It bundles the parsed request,
the response being written, the route parameters and whatever the global
middlewares attach along the way (body, files, session).
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, TYPE_CHECKING

from .http.request import HTTPRequest
from .http.response import ResponseWriter
from .http.status_codes import HTTPStatus
from .stores import SESSION_COOKIE, Session, Stores

if TYPE_CHECKING:
    from .http.multipart import UploadedFile
    from .templates import TemplateEngine


@dataclass
class RequestContext:
    request: HTTPRequest
    response: ResponseWriter
    stores: Stores
    params: Dict[str, str] = field(default_factory=dict)
    query: Dict[str, str] = field(default_factory=dict)
    templates: Optional["TemplateEngine"] = None

    # Filled in by the global middlewares.
    body: Any = None
    files: List["UploadedFile"] = field(default_factory=list)
    session: Optional[Session] = None
    state: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def create(
        cls,
        request: HTTPRequest,
        response: ResponseWriter,
        stores: Stores,
        params: Optional[Dict[str, str]] = None,
        templates: Optional["TemplateEngine"] = None,
    ) -> "RequestContext":
        return cls(
            request=request,
            response=response,
            stores=stores,
            params=dict(params or {}),
            query=request.query_first_values(),
            templates=templates,
        )

    # -------------------------------------------------------------------------
    # Answering
    # -------------------------------------------------------------------------

    def json(self, data: Any, status: int = HTTPStatus.OK) -> None:
        self.response.json(data, status=status)

    def send(self, status: int, data: Any) -> None:
        """Plain text for strings, JSON for anything else."""
        if isinstance(data, str):
            self.response.text(data, status=status)
        else:
            self.response.json(data, status=status)

    def html(self, markup: str, status: int = HTTPStatus.OK) -> None:
        self.response.html(markup, status=status)

    def render(self, view: str, data: Optional[Dict[str, Any]] = None,
               status: int = HTTPStatus.OK) -> None:
        """
        Render `view` through the template engine and send it as HTML.

        The current user (or None) is available to templates as `user`
        unless `data` supplies its own.

        Raises:
            RuntimeError: if the server has no template engine.
        """
        if self.templates is None:
            raise RuntimeError("No template engine configured")
        values = {"user": self.session.user if self.session else None}
        values.update(data or {})
        self.html(self.templates.render(view, values), status=status)

    def redirect(self, location: str, status: int = HTTPStatus.FOUND) -> None:
        self.response.redirect(location, status=status)

    # -------------------------------------------------------------------------
    # Sessions
    # -------------------------------------------------------------------------

    def set_session(self, user: Any) -> None:
        """
        Attach `user` to the current session.

        Raises:
            RuntimeError: when no session middleware ran for this request.
        """
        if self.session is None:
            raise RuntimeError("No session: SessionMiddleware is not installed")
        self.session.user = user
        self.stores.sessions.save(self.session)

    def destroy_session(self) -> None:
        """Forget the current session and expire the cookie."""
        if self.session is None:
            return
        if self.stores.sessions.destroy(self.session.id):
            self.stores.metrics.session_closed()
        self.session = None
        cookie = self.state.get("session_cookie", SESSION_COOKIE)
        self.response.set_header("Set-Cookie", f"{cookie}=; Path=/; HttpOnly; Max-Age=0")

    def __repr__(self) -> str:
        return f"<RequestContext {self.request.method} {self.request.target} params={self.params}>"
