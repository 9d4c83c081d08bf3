from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import pytest

from uipreview.cache import CacheGeneration, load_generation
from uipreview.settings import Settings, get_settings

DEFAULT_LAYOUT = """\
<!DOCTYPE html>
<html>
<head>
<title>{{ page.title }} | {{ site.title }}</title>
<link rel="stylesheet" href="{{ uiRootPath }}/css/main.css">
</head>
<body>
{% include "header" %}
<main>{{ page.contents }}</main>
<a href="{{ siteRootPath }}/index.html">home</a>
<script src="{{ uiRootPath }}/js/main.js"></script>
</body>
</html>
"""

NOT_FOUND_LAYOUT = """\
<html>
<head><title>{{ page.title }}</title></head>
<body><h1>{{ page.title }} ({{ site.title }})</h1></body>
</html>
"""

HEADER_PARTIAL = """<header>{{ site.title }} {{ shout("hi") }}</header>\n"""

SHOUT_HELPER = """\
def helper(text, **options):
    return str(text).upper() + "!"
"""

UI_MODEL = """\
site:
  title: Docs
  url: https://docs.example.com
page:
  title: Default
  version: "1.0"
"""

INDEX_PAGE = """\
page-layout: default
page-role: home

# Hello

Some *text*.
"""


@dataclass(frozen=True)
class SiteTree:
    root: Path
    source_root: Path
    content_root: Path
    output_root: Path
    bundle_dir: Path

    @property
    def model_path(self) -> Path:
        return self.content_root / "ui-model.yml"

    def write(self, relative: str, text: str) -> Path:
        path = self.root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        return path


@pytest.fixture
def site_tree(tmp_path: Path) -> SiteTree:
    tree = SiteTree(
        root=tmp_path,
        source_root=tmp_path / "src",
        content_root=tmp_path / "preview-src",
        output_root=tmp_path / "public",
        bundle_dir=tmp_path / "build",
    )
    tree.write("src/layouts/default.html", DEFAULT_LAYOUT)
    tree.write("src/layouts/404.html", NOT_FOUND_LAYOUT)
    tree.write("src/partials/header.html", HEADER_PARTIAL)
    tree.write("src/helpers/shout.py", SHOUT_HELPER)
    tree.write("preview-src/ui-model.yml", UI_MODEL)
    tree.write("preview-src/index.md", INDEX_PAGE)
    return tree


@pytest.fixture
def settings(site_tree: SiteTree) -> Settings:
    return Settings(
        source_root=site_tree.source_root,
        content_root=site_tree.content_root,
        output_root=site_tree.output_root,
        bundle_dir=site_tree.bundle_dir,
        watch_sources=False,
        rebuild_on_change=False,
    )


@pytest.fixture
def generation(site_tree: SiteTree) -> CacheGeneration:
    return load_generation(site_tree.source_root, site_tree.model_path)


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
