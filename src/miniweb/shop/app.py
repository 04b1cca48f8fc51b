"""
=============================================================================
STOREFRONT
=============================================================================

The demo application: HTML pages, a small JSON API, comments, uploads and
a login, all running on the miniweb server.

    Global middlewares, in order:
        LoggingMiddleware → MetricsMiddleware → SessionMiddleware
            → BodyParserMiddleware → CacheMiddleware (/api GETs)

    Pages                               API
    ─────                               ───
    GET  /                              GET  /api/productos
    GET  /productos                     GET  /api/productos/:id
    GET  /productos/upload              GET  /api/productos/:id/comments
    POST /productos/upload              POST /api/productos/:id/comments
    GET  /productos/:id                 GET  /metrics
    GET  /login   POST /login
    GET  /logout
    GET  /acerca

/productos/upload is registered before /productos/:id; with the first
registration winning, the other order would send the upload form to the
product page with id "upload".
=============================================================================
"""

from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional
import logging
import os
import sys

from ..config import ServerConfig
from ..http.status_codes import HTTPStatus
from ..middleware import (
    BodyParserMiddleware,
    CacheMiddleware,
    LoggingMiddleware,
    MetricsMiddleware,
    SessionMiddleware,
)
from ..server import HTTPServer
from .catalog import Catalog, paginate, parse_int, parse_number
from .comments import CommentRepository

logger = logging.getLogger(__name__)

PACKAGE_DIR = Path(__file__).resolve().parent
DEFAULT_VIEWS = PACKAGE_DIR / "views"
DEFAULT_PUBLIC = PACKAGE_DIR / "public"
DEFAULT_PRODUCTS = PACKAGE_DIR / "data" / "productos.json"

PRELOAD = ("css/styles.css", "js/app.js")

DEMO_USERS = {"admin": "secret"}


def create_shop_app(
    config: Optional[ServerConfig] = None,
    catalog: Optional[Catalog] = None,
) -> HTTPServer:
    """
    Build the storefront server.

    Directories left unset in `config` fall back to the ones shipped with
    the package; comments go to `<data_dir>/comments.json` (./data by
    default). A `productos.json` in data_dir replaces the bundled catalog.
    """
    config = replace(config or ServerConfig.from_env())
    if config.static_dir is None:
        config.static_dir = str(DEFAULT_PUBLIC)
    if config.views_dir is None:
        config.views_dir = str(DEFAULT_VIEWS)
    data_dir = Path(config.data_dir or "data")

    if catalog is None:
        products_file = data_dir / "productos.json"
        catalog = Catalog.from_file(products_file if products_file.is_file() else DEFAULT_PRODUCTS)
    comments = CommentRepository(data_dir / "comments.json")

    server = HTTPServer(config)
    server.use(LoggingMiddleware(log_format=config.log_format))
    server.use(MetricsMiddleware())
    server.use(SessionMiddleware())
    server.use(BodyParserMiddleware())
    server.use(CacheMiddleware(prefix=config.api_prefix))

    register_routes(server, catalog, comments, Path(config.static_dir) / "images")
    if server.static is not None:
        server.static.preload(PRELOAD)
    return server


def register_routes(
    server: HTTPServer,
    catalog: Catalog,
    comments: CommentRepository,
    images_dir: Path,
) -> None:

    # -------------------------------------------------------------------------
    # Pages
    # -------------------------------------------------------------------------

    @server.get("/")
    def home(ctx):
        ctx.render("home", {
            "titulo": "Bienvenido",
            "productos": catalog.all(),
            "fecha": datetime.now().strftime("%d-%m-%Y"),
        })

    @server.get("/productos")
    def product_list(ctx):
        productos = catalog.search(
            categoria=ctx.query.get("categoria"),
            max_precio=parse_number(ctx.query.get("maxPrecio")),
        )
        ctx.render("productos", {
            "titulo": "Productos",
            "productos": productos,
            "filtros": ctx.query,
            "categorias": catalog.categories(),
        })

    @server.get("/productos/upload")
    def upload_form(ctx):
        ctx.render("producto-upload", {"titulo": "Subir Producto"})

    @server.post("/productos/upload")
    def upload(ctx):
        if "multipart/form-data" not in (ctx.request.get_header("content-type") or ""):
            ctx.send(HTTPStatus.BAD_REQUEST, "Se requiere multipart/form-data")
            return
        if not ctx.files:
            ctx.send(HTTPStatus.BAD_REQUEST, "No se subió archivo")
            return

        first, rest = ctx.files[0], ctx.files[1:]
        saved = first.save_to(images_dir)
        for extra in rest:
            extra.discard()
        logger.info(f"Stored upload {saved.name} ({first.size} bytes)")
        ctx.json({"ok": True, "filename": saved.name})

    @server.get("/productos/:id")
    def product_detail(ctx):
        producto = catalog.get(ctx.params["id"])
        if producto is None:
            ctx.render("404", {
                "titulo": "No encontrado",
                "mensaje": "Producto no existe",
            }, status=HTTPStatus.NOT_FOUND)
            return
        ctx.render("producto-detalle", {"titulo": producto.get("nombre"), "producto": producto})

    @server.get("/acerca")
    def about(ctx):
        ctx.render("about", {
            "titulo": "Acerca de Nosotros",
            "empresa": "Mi Empresa S.A.",
            "descripcion": "Somos una tienda dedicada a productos de calidad.",
            "fundacion": "2020",
        })

    # -------------------------------------------------------------------------
    # Login
    # -------------------------------------------------------------------------

    @server.get("/login")
    def login_form(ctx):
        ctx.render("login", {"titulo": "Iniciar Sesión"})

    @server.post("/login")
    def login(ctx):
        body = ctx.body if isinstance(ctx.body, dict) else {}
        username = body.get("username")
        if username in DEMO_USERS and body.get("password") == DEMO_USERS[username]:
            ctx.set_session({"username": username, "role": "admin"})
            ctx.redirect("/")
            return
        ctx.send(HTTPStatus.UNAUTHORIZED, "Credenciales inválidas")

    @server.get("/logout")
    def logout(ctx):
        ctx.destroy_session()
        ctx.redirect("/")

    # -------------------------------------------------------------------------
    # API
    # -------------------------------------------------------------------------

    @server.get("/api/productos")
    def api_products(ctx):
        query = ctx.query
        results = catalog.search(
            categoria=query.get("categoria"),
            min_precio=parse_number(query.get("minPrecio")),
            max_precio=parse_number(query.get("maxPrecio")),
            ordenar=query.get("ordenar"),
        )
        page = paginate(
            results,
            pagina=parse_int(query.get("pagina"), 1),
            limite=parse_int(query.get("limite"), 10),
        )
        ctx.json(page.to_dict())

    @server.get("/api/productos/:id")
    def api_product(ctx):
        producto = catalog.get(ctx.params["id"])
        if producto is None:
            ctx.json({"error": "Producto no encontrado"}, status=HTTPStatus.NOT_FOUND)
            return
        ctx.json(producto)

    @server.get("/api/productos/:id/comments")
    def list_comments(ctx):
        ctx.json(comments.list(ctx.params["id"]))

    @server.post("/api/productos/:id/comments")
    def add_comment(ctx):
        product_id = ctx.params["id"]
        body = ctx.body if isinstance(ctx.body, dict) else {}
        author, text = body.get("author"), body.get("text")
        if not author or not text:
            ctx.json({"error": "author y text requeridos"}, status=HTTPStatus.BAD_REQUEST)
            return

        item = comments.add(product_id, str(author), str(text))
        ctx.stores.cache.invalidate_prefix(f"/api/productos/{product_id}/comments")
        ctx.json(item, status=HTTPStatus.CREATED)

    @server.get("/metrics")
    def metrics(ctx):
        stats: Dict[str, Any] = {
            "uptime": round(server.uptime, 3),
            "memory": _memory_usage(),
            "cpu": _cpu_usage(),
        }
        stats.update(ctx.stores.metrics.snapshot())
        ctx.json(stats)


def _cpu_usage() -> Dict[str, float]:
    times = os.times()
    return {"user": times.user, "system": times.system}


def _memory_usage() -> Dict[str, Any]:
    usage: Dict[str, Any] = {"allocated_blocks": sys.getallocatedblocks()}
    try:
        import resource
    except ImportError:
        return usage
    # ru_maxrss is kilobytes on Linux and bytes on macOS
    usage["max_rss"] = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    return usage
