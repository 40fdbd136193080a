import pytest

from sppmon.catalog import Catalog
from sppmon.errors import CatalogError


def test_service_queries(catalog):
    assert catalog.has_service("A")
    assert not catalog.has_service("nope")
    assert catalog.binaries("A") == ["a"]
    assert catalog.requires("B") == ["A"]
    assert catalog.fragments("B") == ["f2"]
    assert catalog.description("A") == "Service A"
    assert "${SPPMON_CONFIG_DIR}" in catalog.args("A")


def test_unknown_service_raises(catalog):
    with pytest.raises(CatalogError, match="nope"):
        catalog.service("nope")


def test_resolve_token_by_service_or_unique_fragment(catalog):
    assert catalog.resolve_token("B") == "B"
    assert catalog.resolve_token("f2") == "B"


def test_resolve_token_ambiguous_fragment(catalog):
    # f1 is declared by both A and D
    with pytest.raises(CatalogError, match="Ambiguous"):
        catalog.resolve_token("f1")


def test_resolve_token_unknown(catalog):
    with pytest.raises(CatalogError, match="Unknown service 'ghost'"):
        catalog.resolve_token("ghost")


def test_default_services_tries_case_variants(catalog):
    assert catalog.default_services("demo") == ["B"]
    assert catalog.default_services("DEMO") == ["B"]
    with pytest.raises(CatalogError, match="other"):
        catalog.default_services("other")


def test_missing_fragments_key_defaults_to_service_name():
    catalog = Catalog({"nginx": {"binaries": ["nginx"]}})
    assert catalog.fragments("nginx") == ["nginx"]


def test_string_lists_are_split():
    catalog = Catalog({"a": {"binaries": "x, y", "requires": None, "fragments": []}})
    assert catalog.binaries("a") == ["x", "y"]
    assert catalog.requires("a") == []


def test_fragment_dir(catalog):
    assert catalog.fragment_dir("f1").name == "f1"
    assert catalog.fragment_dir("f3") is None


def test_malformed_yaml(tmp_path):
    (tmp_path / "services.yml").write_text("services: [unclosed\n")
    with pytest.raises(CatalogError, match="Malformed"):
        Catalog.from_directory(tmp_path)


def test_missing_services_file(tmp_path):
    with pytest.raises(CatalogError, match="not found"):
        Catalog.from_directory(tmp_path)
