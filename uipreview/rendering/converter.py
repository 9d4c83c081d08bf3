"""Markup conversion: the document contract and the Markdown implementation."""

from __future__ import annotations

import hashlib
import logging
import re
from pathlib import Path
from typing import Any, Mapping, Protocol

import markdown
import requests
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..core.errors import ConversionError

logger = logging.getLogger(__name__)

DIAGRAM_FETCH_ATTRIBUTE = "kroki-fetch-diagram"
DIAGRAM_SERVER_ATTRIBUTE = "kroki-server-url"
DIAGRAM_TYPES = frozenset(
    {
        "actdiag",
        "blockdiag",
        "bpmn",
        "bytefield",
        "c4plantuml",
        "d2",
        "ditaa",
        "erd",
        "graphviz",
        "mermaid",
        "nomnoml",
        "nwdiag",
        "pikchr",
        "plantuml",
        "seqdiag",
        "svgbob",
        "vega",
        "vegalite",
        "wavedrom",
    }
)
DIAGRAM_TIMEOUT = 30

_FENCED_BLOCK = re.compile(
    r"^(?P<fence>`{3,}|~{3,})[ \t]*(?P<lang>[\w-]+)[^\n]*\n(?P<body>.*?)^(?P=fence)[ \t]*$",
    re.MULTILINE | re.DOTALL,
)


class Document(Protocol):
    """A parsed content document."""

    def get_attributes(self) -> dict[str, Any]: ...

    def get_attribute(self, name: str, default: Any = None) -> Any: ...

    def get_document_title(self) -> str | None: ...

    def convert(self) -> str: ...


class Converter(Protocol):
    """Turns markup text plus an attribute set into a ``Document``."""

    def load(
        self, source: str, *, base_dir: Path, attributes: Mapping[str, Any]
    ) -> Document: ...


class MarkdownDocument:
    def __init__(self, html: str, attributes: dict[str, Any], title: str | None) -> None:
        self._html = html
        self._attributes = attributes
        self._title = title

    def get_attributes(self) -> dict[str, Any]:
        return dict(self._attributes)

    def get_attribute(self, name: str, default: Any = None) -> Any:
        return self._attributes.get(name, default)

    def get_document_title(self) -> str | None:
        return self._title

    def convert(self) -> str:
        return self._html


def _first_heading(tokens: list[dict[str, Any]]) -> str | None:
    for token in tokens:
        if token.get("level") == 1:
            return token.get("name")
    return None


@retry(
    reraise=True,
    retry=retry_if_exception_type((requests.ConnectionError, requests.Timeout)),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=8),
    before_sleep=before_sleep_log(logger, logging.WARNING),
)
def fetch_diagram(server_url: str, kind: str, source: str) -> bytes:
    """Render one diagram to SVG through a Kroki-compatible service."""
    response = requests.post(
        f"{server_url.rstrip('/')}/{kind}/svg",
        data=source.encode("utf-8"),
        headers={"Content-Type": "text/plain"},
        timeout=DIAGRAM_TIMEOUT,
    )
    response.raise_for_status()
    return response.content


class MarkdownConverter:
    """Converter backed by Python-Markdown.

    Recognised attributes:

    * ``source-highlighter``: ``pygments`` enables server-side highlighting,
      anything else leaves ``language-*`` classes for a client highlighter.
    * ``kroki-fetch-diagram`` with ``kroki-server-url``: fenced diagram blocks
      are rendered to SVG files in ``base_dir`` and referenced via ``imagesdir``.

    The metadata header (``key: value`` lines) is merged into the document
    attributes; ``title`` or the first level-1 heading is the document title.
    """

    def load(
        self, source: str, *, base_dir: Path, attributes: Mapping[str, Any]
    ) -> MarkdownDocument:
        attrs = dict(attributes)

        server_url = attrs.get(DIAGRAM_SERVER_ATTRIBUTE)
        if attrs.get(DIAGRAM_FETCH_ATTRIBUTE) and server_url:
            source = self._render_diagrams(source, base_dir, str(server_url), attrs)

        md = markdown.Markdown(extensions=self._extensions(attrs))
        html = md.convert(source)

        meta = {
            key: "\n".join(values) for key, values in getattr(md, "Meta", {}).items()
        }
        attrs.update(meta)
        title = meta.get("title") or _first_heading(getattr(md, "toc_tokens", []))
        if title:
            attrs["doctitle"] = title

        return MarkdownDocument(html=html, attributes=attrs, title=title)

    @staticmethod
    def _extensions(attrs: Mapping[str, Any]) -> list[str]:
        extensions = ["meta", "toc", "fenced_code", "tables"]
        if attrs.get("source-highlighter") == "pygments":
            extensions.append("codehilite")
        return extensions

    def _render_diagrams(
        self, source: str, base_dir: Path, server_url: str, attrs: Mapping[str, Any]
    ) -> str:
        images_dir = str(attrs.get("imagesdir", "_/img")).rstrip("/")

        def replace(match: re.Match[str]) -> str:
            kind = match.group("lang").lower()
            if kind not in DIAGRAM_TYPES:
                return match.group(0)

            body = match.group("body")
            digest = hashlib.sha1(f"{kind}\n{body}".encode("utf-8")).hexdigest()[:12]
            filename = f"diag-{kind}-{digest}.svg"
            target = base_dir / filename
            if not target.exists():
                try:
                    svg = fetch_diagram(server_url, kind, body)
                    target.write_bytes(svg)
                except (requests.RequestException, OSError) as exc:
                    raise ConversionError(f"Cannot render {kind} diagram: {exc}") from exc
                logger.debug(f"Rendered {kind} diagram to {target}")
            return f"![{kind} diagram]({images_dir}/{filename})"

        return _FENCED_BLOCK.sub(replace, source)
