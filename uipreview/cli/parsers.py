"""CLI argument parsers and validators."""

from __future__ import annotations

from typing import Any

import typer

from ..settings import ENV_PREFIX


def parse_attribute(value: str) -> tuple[str, Any]:
    """Parse a converter attribute in format NAME=VALUE.

    A bare NAME sets the attribute to True; NAME! removes it (False).
    """
    if "=" not in value:
        name = value.strip()
        if not name:
            raise typer.BadParameter("Attribute name must not be empty")
        if name.endswith("!"):
            return name[:-1], False
        return name, True
    name, raw = value.split("=", 1)
    name = name.strip()
    if not name:
        raise typer.BadParameter(f"Must be NAME=VALUE, got: {value!r}")
    return name, coerce_value(raw)


def coerce_value(value: str) -> bool | str:
    """Coerce boolean-looking strings; everything else stays a string."""
    value_lower = value.strip().lower()
    if value_lower in ("true", "false"):
        return value_lower == "true"
    return value


def bundle_url_hint(path: str, env: dict[str, str]) -> str | None:
    """Return the Antora option line for ``path`` unless running under CI."""
    if env.get("CI") or env.get(f"{ENV_PREFIX}CI"):
        return None
    return f"Antora option: --ui-bundle-url={path}"
