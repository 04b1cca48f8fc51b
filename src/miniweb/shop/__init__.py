"""Demo storefront built on miniweb; `python -m miniweb` runs it."""

from .app import create_shop_app, register_routes
from .catalog import Catalog, Page, paginate
from .comments import CommentRepository

__all__ = [
    "create_shop_app",
    "register_routes",
    "Catalog",
    "Page",
    "paginate",
    "CommentRepository",
]
