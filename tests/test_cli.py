"""Tests for the command-line interface."""

from __future__ import annotations

import zipfile

import pytest
import typer
from typer.testing import CliRunner

from uipreview.cli import app
from uipreview.cli.parsers import bundle_url_hint, coerce_value, parse_attribute

runner = CliRunner()


@pytest.fixture
def in_site(site_tree, monkeypatch):
    monkeypatch.chdir(site_tree.root)
    monkeypatch.delenv("CI", raising=False)
    return site_tree


def test_build_without_bundle(in_site):
    result = runner.invoke(app, ["build", "--no-bundle"])

    assert result.exit_code == 0, result.output
    assert (in_site.output_root / "index.html").is_file()
    assert not (in_site.bundle_dir / "ui-bundle.zip").exists()


def test_build_packs_ui_directory(in_site):
    in_site.write("public/_/css/site.css", "body{}")

    result = runner.invoke(app, ["build"])

    assert result.exit_code == 0, result.output
    with zipfile.ZipFile(in_site.bundle_dir / "ui-bundle.zip") as archive:
        assert "css/site.css" in archive.namelist()


def test_build_skips_failing_pages(in_site):
    in_site.write("preview-src/odd.md", "page-layout: nope\n\n# Odd\n")

    result = runner.invoke(app, ["build", "--no-bundle"])

    assert result.exit_code == 0, result.output
    assert (in_site.output_root / "index.html").is_file()
    assert not (in_site.output_root / "odd.html").exists()


def test_build_fails_on_broken_model(in_site):
    in_site.write("preview-src/ui-model.yml", "site: [unclosed\n")

    result = runner.invoke(app, ["build", "--no-bundle"])

    assert result.exit_code == 1


def test_build_reads_settings_from_environment(in_site, monkeypatch):
    monkeypatch.setenv("UIPREVIEW_OUTPUT_ROOT", str(in_site.root / "site-out"))

    result = runner.invoke(app, ["build", "--no-bundle"])

    assert result.exit_code == 0, result.output
    assert (in_site.root / "site-out" / "index.html").is_file()


def test_pack_creates_named_bundle(in_site):
    in_site.write("public/_/js/site.js", "1")

    result = runner.invoke(app, ["pack", "public/_", "dist", "theme"])

    assert result.exit_code == 0, result.output
    assert "Bundle created successfully: dist/theme-bundle.zip" in result.output
    assert (in_site.root / "dist" / "theme-bundle.zip").is_file()


def test_pack_missing_source_exits_with_error(in_site):
    result = runner.invoke(app, ["pack", "nowhere", "dist"])

    assert result.exit_code == 1
    assert not (in_site.root / "dist" / "ui-bundle.zip").exists()


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("stem=asciimath", ("stem", "asciimath")),
        ("experimental=false", ("experimental", False)),
        ("a=b=c", ("a", "b=c")),
        ("sectanchors", ("sectanchors", True)),
        ("experimental!", ("experimental", False)),
    ],
)
def test_parse_attribute(raw, expected):
    assert parse_attribute(raw) == expected


@pytest.mark.parametrize("raw", ["", "=value", "  "])
def test_parse_attribute_rejects_missing_name(raw):
    with pytest.raises(typer.BadParameter):
        parse_attribute(raw)


def test_coerce_value():
    assert coerce_value("TRUE") is True
    assert coerce_value(" false ") is False
    assert coerce_value("1") == "1"


def test_bundle_url_hint_suppressed_in_ci():
    assert bundle_url_hint("build/ui-bundle.zip", {}) == (
        "Antora option: --ui-bundle-url=build/ui-bundle.zip"
    )
    assert bundle_url_hint("build/ui-bundle.zip", {"CI": "true"}) is None
    assert bundle_url_hint("build/ui-bundle.zip", {"UIPREVIEW_CI": "1"}) is None


def test_build_fails_on_undecodable_layout(in_site):
    (in_site.source_root / "layouts" / "default.html").write_bytes(b"<p>caf\xe9</p>")

    result = runner.invoke(app, ["build", "--no-bundle"])

    assert result.exit_code == 1
    assert not (in_site.output_root / "index.html").exists()
