"""
=============================================================================
TEMPLATES
=============================================================================

A small mustache-like renderer for the HTML views.

    {{titulo}}                      variable, missing values render as ""
    {{producto.precio}}             dotted lookup through dicts/attributes
    {{#if user}} ... {{/if}}        kept when the value is truthy
    {{#if !user}} ... {{/if}}       kept when the value is falsy
    {{#each productos}} ... {{/each}}
        {{this}}  {{this.nombre}}  {{@index}}  {{nombre}}

Blocks do not nest. Rendering happens in three passes over the view:
conditionals, then loops, then variables. The result is placed into the
layout at {{{content}}} and the layout's own variables are filled from the
same data.

Values are inserted as-is; views must not interpolate untrusted input where
markup would matter.
=============================================================================
"""

from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union
import logging
import re
import threading

logger = logging.getLogger(__name__)


class TemplateNotFound(LookupError):
    """Raised when a view file does not exist in the views directory."""

    def __init__(self, name: str):
        super().__init__(f"Template not found: {name}")
        self.name = name


_IF_BLOCK = re.compile(r"{{#if\s+([^}]+)}}(.*?){{/if}}", re.DOTALL)
_EACH_BLOCK = re.compile(r"{{#each\s+([^}]+)}}(.*?){{/each}}", re.DOTALL)
_INDEX = re.compile(r"{{\s*@index\s*}}")
_THIS = re.compile(r"{{\s*this(?:\.([^}\s]+))?\s*}}")
_VARIABLE = re.compile(r"{{\s*([^{}\s]+)\s*}}")

CONTENT_SLOT = "{{{content}}}"


def lookup(data: Any, path: str) -> Any:
    """
    Resolve a dotted path; any missing step gives None.

        >>> lookup({"p": {"nombre": "Lámpara"}}, "p.nombre")
        'Lámpara'
    """
    current = data
    for key in path.split("."):
        if current is None:
            return None
        if isinstance(current, Mapping):
            current = current.get(key)
        elif isinstance(current, (list, tuple)) and key.isdigit():
            index = int(key)
            current = current[index] if index < len(current) else None
        else:
            current = getattr(current, key, None)
    return current


def to_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (list, tuple)):
        return ",".join(to_text(item) for item in value)
    return str(value)


def render_string(template: str, data: Mapping[str, Any]) -> str:
    """Render template text without a layout."""
    text = _IF_BLOCK.sub(lambda m: _render_if(m, data), template)
    text = _EACH_BLOCK.sub(lambda m: _render_each(m, data), text)
    return substitute(text, data)


def substitute(text: str, data: Any) -> str:
    return _VARIABLE.sub(lambda m: to_text(lookup(data, m.group(1))), text)


def _render_if(match: "re.Match[str]", data: Mapping[str, Any]) -> str:
    expression = match.group(1).strip()
    negate = expression.startswith("!")
    if negate:
        expression = expression[1:].strip()
    value = bool(lookup(data, expression))
    return match.group(2) if value != negate else ""


def _render_each(match: "re.Match[str]", data: Mapping[str, Any]) -> str:
    items = lookup(data, match.group(1).strip())
    if not isinstance(items, (list, tuple)):
        return ""

    body = match.group(2)
    rendered = []
    for index, item in enumerate(items):
        block = _INDEX.sub(str(index), body)
        block = _THIS.sub(
            lambda m, item=item: to_text(item if m.group(1) is None else lookup(item, m.group(1))),
            block,
        )
        # Bare names come from the item first, then from the outer data.
        block = _VARIABLE.sub(
            lambda m, item=item: to_text(_item_or_outer(item, data, m.group(1))),
            block,
        )
        rendered.append(block)
    return "".join(rendered)


def _item_or_outer(item: Any, data: Mapping[str, Any], path: str) -> Any:
    value = lookup(item, path)
    if value is None:
        value = lookup(data, path)
    return value


class TemplateEngine:
    """
    Renders views from a directory, wrapping them in a layout.

        engine = TemplateEngine("views")
        html = engine.render("producto-detalle", {"producto": p})

    With `cache=True` each file is read once; clear_cache() forces a reload.
    """

    def __init__(self, views_dir: Union[str, Path], layout: Optional[str] = "layout.html",
                 cache: bool = True):
        self.views_dir = Path(views_dir).resolve()
        self.layout = layout
        self.cache_enabled = cache
        self._cache: Dict[str, Optional[str]] = {}
        self._lock = threading.Lock()

    def render(self, view: str, data: Optional[Mapping[str, Any]] = None) -> str:
        """
        Raises:
            TemplateNotFound: if the view does not exist.
        """
        data = data or {}
        source = self._load(self._view_name(view))
        if source is None:
            raise TemplateNotFound(view)

        content = render_string(source, data)

        layout = self._load(self.layout) if self.layout else None
        if layout is None:
            return content
        # The layout itself only gets variable substitution.
        return substitute(layout.replace(CONTENT_SLOT, content, 1), data)

    def exists(self, view: str) -> bool:
        return self._load(self._view_name(view)) is not None

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()

    @staticmethod
    def _view_name(view: str) -> str:
        return view if view.endswith(".html") else f"{view}.html"

    def _load(self, name: str) -> Optional[str]:
        if self.cache_enabled:
            with self._lock:
                if name in self._cache:
                    return self._cache[name]

        path = (self.views_dir / name).resolve()
        if self.views_dir not in path.parents or not path.is_file():
            source = None
        else:
            source = path.read_text(encoding="utf-8")
            logger.debug(f"Loaded template {name}")

        if self.cache_enabled:
            with self._lock:
                self._cache[name] = source
        return source
