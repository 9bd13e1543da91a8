"""Tests for the source registry and page resolver."""

import json
import tempfile
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from src.acquisition import registry
from src.acquisition.adapter import PageRef
from src.acquisition.adapters.mangapill import MangaPillAdapter
from src.acquisition.filesystem_adapter import FilesystemAdapter
from src.acquisition.registry import SourceRegistry, build_adapter
from src.acquisition.resolver import PageResolver
from src.config import Settings
from src.errors import ConfigurationError, NotFoundError, ParseError, RateLimitedError


@pytest.fixture
def registry_path():
    """Create temporary registry file location."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir) / "sources.json"


def test_load_sources_defaults(registry_path):
    """Test built-in sources are present without a registry file."""
    sources = registry.load_sources(registry_path)

    assert sources["en.mangapill"] == {"type": "mangapill"}
    assert sources["en.weebcentral"] == {"type": "weebcentral"}
    assert sources["manhwaraw"] == {"type": "manhwaraw"}


def test_add_and_remove_source(registry_path):
    """Test user sources persist as JSON and can be removed."""
    registry.add_source("local", "filesystem", registry_path=registry_path, path="/srv/manga")
    stored = json.loads(registry_path.read_text(encoding="utf-8"))

    assert stored == {"local": {"type": "filesystem", "path": "/srv/manga"}}
    assert "en.mangapill" not in stored

    assert registry.remove_source("local", registry_path) is True
    assert registry.remove_source("local", registry_path) is False
    assert registry.remove_source("en.mangapill", registry_path) is False


def test_add_source_validation(registry_path):
    """Test invalid source configs are rejected."""
    with pytest.raises(ConfigurationError):
        registry.add_source("x", "unknown-type", registry_path)
    with pytest.raises(ConfigurationError):
        registry.add_source("x", "filesystem", registry_path)


def test_corrupt_registry_falls_back_to_builtins(registry_path):
    """Test a corrupt registry file does not break loading."""
    registry_path.write_text("{not json", encoding="utf-8")

    assert set(registry.load_sources(registry_path)) == set(registry.BUILTIN_SOURCES)


def test_build_adapter():
    """Test adapter construction from configs."""
    settings = Settings(request_timeout=7)

    adapter = build_adapter("en.mangapill", {"type": "mangapill"}, settings)
    assert isinstance(adapter, MangaPillAdapter)
    assert adapter.timeout == 7

    mirror = build_adapter("mirror", {"type": "mangapill", "base_url": "https://mirror.example/"}, settings)
    assert mirror.source_id == "mirror"
    assert mirror.base_url == "https://mirror.example"

    local = build_adapter("local", {"type": "filesystem", "path": "/tmp"}, settings)
    assert isinstance(local, FilesystemAdapter)

    with pytest.raises(ConfigurationError):
        build_adapter("bad", {"type": "nope"}, settings)


def test_registry_from_config_skips_broken_sources(registry_path):
    """Test broken entries are skipped instead of failing startup."""
    registry_path.write_text(json.dumps({"broken": {"type": "filesystem"}}), encoding="utf-8")

    sources = SourceRegistry.from_config(Settings(), registry_path)

    assert "broken" not in sources
    assert "en.mangapill" in sources
    assert {"id": "en.weebcentral", "name": "WeebCentral"} in sources.describe()


def make_resolver(pages=None, side_effect=None):
    adapter = MagicMock()
    adapter.source_id = "fake"
    adapter.pages.return_value = pages
    adapter.pages.side_effect = side_effect
    return PageResolver(SourceRegistry({"fake": adapter})), adapter


def test_resolve_preserves_order():
    """Test the resolver hands back the adapter's order untouched."""
    pages = [PageRef(0, "https://x/c.jpg"), PageRef(1, "https://x/a.jpg"), PageRef(2, "https://x/b.jpg")]
    resolver, adapter = make_resolver(pages=pages)

    result = resolver.resolve("fake", "m1", "c1")

    assert result == tuple(pages)
    adapter.pages.assert_called_once_with("m1", "c1")


def test_resolve_unknown_source():
    """Test unknown sources are NotFound."""
    resolver, _ = make_resolver(pages=[])

    with pytest.raises(NotFoundError):
        resolver.resolve("missing", "m1", "c1")


def test_resolve_empty_page_list():
    """Test an empty page list is a parse error."""
    resolver, _ = make_resolver(pages=[])

    with pytest.raises(ParseError):
        resolver.resolve("fake", "m1", "c1")


def test_resolve_propagates_adapter_errors():
    """Test resolution errors from the adapter pass through."""
    resolver, _ = make_resolver(side_effect=RateLimitedError("slow down"))

    with pytest.raises(RateLimitedError):
        resolver.resolve("fake", "m1", "c1")


def test_resolve_wraps_unexpected_parse_failures():
    """Test adapter bugs surface as parse errors."""
    resolver, _ = make_resolver(side_effect=KeyError("src"))

    with pytest.raises(ParseError):
        resolver.resolve("fake", "m1", "c1")
