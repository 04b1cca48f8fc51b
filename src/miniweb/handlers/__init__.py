"""
Request handlers that sit outside the route table.

StaticFileHandler is offered every request before routing and claims the
ones that name a file under the public directory.
"""

from .static import StaticAsset, StaticFileHandler

__all__ = ["StaticAsset", "StaticFileHandler"]
