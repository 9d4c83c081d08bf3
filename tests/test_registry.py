"""Tests for the template registry."""

from __future__ import annotations

import pytest

from uipreview.core.errors import LayoutResolutionError, LoadError
from uipreview.rendering.registry import (
    BUILTIN_HELPERS,
    RESERVED_NAMES,
    load_registry,
    resolve_page,
    resolve_page_url,
)


def test_registry_keys_are_file_stems(site_tree):
    registry = load_registry(site_tree.source_root)

    assert set(registry.partials) == {"header"}
    assert set(registry.layouts) == {"default", "404"}
    assert set(registry.helpers) == {"resolvePage", "resolvePageURL", "shout"}


def test_helpers_are_callable_from_templates(site_tree):
    registry = load_registry(site_tree.source_root)

    html = registry.partials["header"].render(site={"title": "Docs"})

    assert html.strip() == "<header>Docs HI!</header>"


def test_builtin_helpers():
    assert resolve_page("target") == "target"
    assert resolve_page("target", url="/a", title="A") == {"url": "/a", "title": "A"}
    assert resolve_page_url("target") == "#"
    assert resolve_page_url("target", title="A") == "#"
    assert resolve_page_url("target", url="/a.html") == "/a.html"


def test_file_helper_may_replace_builtin(site_tree):
    site_tree.write("src/helpers/resolvePageURL.py", "def helper(target, **hash):\n    return '/custom'\n")

    registry = load_registry(site_tree.source_root)

    assert registry.helpers["resolvePageURL"]("x") == "/custom"


@pytest.mark.parametrize("name", sorted(RESERVED_NAMES))
def test_helper_cannot_shadow_engine_globals(site_tree, name):
    site_tree.write(f"src/helpers/{name}.py", "def helper(*args, **kwargs):\n    return None\n")

    with pytest.raises(LoadError, match="shadow"):
        load_registry(site_tree.source_root)


def test_helper_without_entry_point_fails_whole_load(site_tree):
    site_tree.write("src/helpers/broken.py", "value = 42\n")

    with pytest.raises(LoadError, match="callable 'helper'"):
        load_registry(site_tree.source_root)


def test_helper_import_error_fails_whole_load(site_tree):
    site_tree.write("src/helpers/broken.py", "raise RuntimeError('nope')\n")

    with pytest.raises(LoadError, match="nope"):
        load_registry(site_tree.source_root)


def test_layout_syntax_error_fails_whole_load(site_tree):
    site_tree.write("src/layouts/bad.html", "{% if page.title %}unterminated")

    with pytest.raises(LoadError, match="bad.html"):
        load_registry(site_tree.source_root)


def test_partial_syntax_error_fails_whole_load(site_tree):
    site_tree.write("src/partials/footer.html", "{{ site.title ")

    with pytest.raises(LoadError, match="footer"):
        load_registry(site_tree.source_root)


def test_missing_directories_give_empty_sets(tmp_path):
    registry = load_registry(tmp_path)

    assert dict(registry.layouts) == {}
    assert dict(registry.partials) == {}
    assert set(registry.helpers) == set(BUILTIN_HELPERS)


def test_unknown_layout_raises_resolution_error(site_tree):
    registry = load_registry(site_tree.source_root)

    with pytest.raises(LayoutResolutionError, match="Layout not found: missing"):
        registry.layout("missing")


def test_reload_reproduces_registry_without_stale_entries(site_tree):
    first = load_registry(site_tree.source_root)
    second = load_registry(site_tree.source_root)

    assert set(first.partials) == set(second.partials)
    assert set(first.helpers) == set(second.helpers)
    assert set(first.layouts) == set(second.layouts)
    assert first.environment is not second.environment
    assert RESERVED_NAMES <= set(second.environment.globals)


def test_removed_sources_disappear_on_reload(site_tree):
    load_registry(site_tree.source_root)
    (site_tree.source_root / "helpers" / "shout.py").unlink()
    (site_tree.source_root / "partials" / "header.html").unlink()

    registry = load_registry(site_tree.source_root)

    assert "shout" not in registry.helpers
    assert "header" not in registry.partials
    assert set(BUILTIN_HELPERS) <= set(registry.helpers)


@pytest.mark.parametrize("relative", ["src/layouts/latin1.html", "src/partials/latin1.html"])
def test_undecodable_template_fails_whole_load(site_tree, relative):
    path = site_tree.root / relative
    path.write_bytes(b"<p>caf\xe9</p>")

    with pytest.raises(LoadError, match="latin1.html"):
        load_registry(site_tree.source_root)
