"""Source registry with JSON persistence."""

import json
from pathlib import Path
from typing import Dict, Optional

from src.config import Settings, get_home_dir
from src.errors import ConfigurationError
from src.utils.logger import logger as LOGGER

from .adapter import SourceAdapter
from .adapters.mangapill import MangaPillAdapter
from .adapters.manhwaraw import ManhwaRawAdapter
from .adapters.weebcentral import WeebCentralAdapter
from .filesystem_adapter import FilesystemAdapter


SOURCES_FILENAME = "sources.json"

HTML_SOURCE_TYPES = {
    "mangapill": MangaPillAdapter,
    "weebcentral": WeebCentralAdapter,
    "manhwaraw": ManhwaRawAdapter,
}
SOURCE_TYPES = tuple(HTML_SOURCE_TYPES) + ("filesystem",)

BUILTIN_SOURCES: Dict[str, dict] = {
    MangaPillAdapter.source_id: {"type": "mangapill"},
    WeebCentralAdapter.source_id: {"type": "weebcentral"},
    ManhwaRawAdapter.source_id: {"type": "manhwaraw"},
}


def get_registry_path() -> Path:
    return get_home_dir() / SOURCES_FILENAME


def load_sources(path: Optional[Path] = None) -> Dict[str, dict]:
    """Load source registry from disk, merged over the built-in sources.

    Returns:
        Dict mapping source_id to source config
    """
    path = path or get_registry_path()
    sources = {source_id: dict(config) for source_id, config in BUILTIN_SOURCES.items()}

    if not path.exists():
        return sources

    try:
        with open(path, "r", encoding="utf-8") as f:
            stored = json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        LOGGER.warning(f"Failed to load source registry: {e}")
        return sources

    if isinstance(stored, dict):
        sources.update(stored)
    return sources


def save_sources(sources: Dict[str, dict], path: Optional[Path] = None) -> None:
    """Save user-registered sources to disk.

    Built-in sources are not written unless their config was changed.

    Args:
        sources: Dict mapping source_id to source config
    """
    path = path or get_registry_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    custom = {
        source_id: config for source_id, config in sources.items()
        if BUILTIN_SOURCES.get(source_id) != config
    }

    try:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(custom, f, indent=2, ensure_ascii=False)
    except OSError as e:
        LOGGER.error(f"Failed to save source registry: {e}")
        raise


def add_source(source_id: str, source_type: str, registry_path: Optional[Path] = None, **kwargs) -> None:
    """Add or update a source in the registry.

    Args:
        source_id: Unique identifier for the source
        source_type: Type of source adapter (filesystem, mangapill, etc.)
        registry_path: Registry file, defaults to <home>/sources.json
        **kwargs: Additional source-specific configuration
    """
    if source_type not in SOURCE_TYPES:
        raise ConfigurationError(f"Unknown source type: {source_type}")
    if source_type == "filesystem" and not kwargs.get("path"):
        raise ConfigurationError("Filesystem sources need a path")

    sources = load_sources(registry_path)
    sources[source_id] = {"type": source_type, **kwargs}
    save_sources(sources, registry_path)


def remove_source(source_id: str, registry_path: Optional[Path] = None) -> bool:
    """Remove a user-registered source from the registry.

    Returns:
        True if source was removed, False if not found
    """
    sources = load_sources(registry_path)
    if source_id not in sources or source_id in BUILTIN_SOURCES:
        return False

    del sources[source_id]
    save_sources(sources, registry_path)
    return True


def build_adapter(source_id: str, config: dict, settings: Settings) -> SourceAdapter:
    """Instantiate the adapter for a registered source."""
    source_type = config.get("type")

    if source_type == "filesystem":
        root = config.get("path")
        if not root:
            raise ConfigurationError(f"Filesystem source {source_id} missing path")
        return FilesystemAdapter(source_id, Path(root).expanduser())

    adapter_cls = HTML_SOURCE_TYPES.get(source_type)
    if adapter_cls is None:
        raise ConfigurationError(f"Unknown source type for {source_id}: {source_type}")

    adapter = adapter_cls(timeout=settings.request_timeout, user_agent=settings.user_agent)
    if source_id != adapter_cls.source_id:
        # Same site registered under another id, e.g. a mirror
        adapter.source_id = source_id
    if config.get("base_url"):
        adapter.base_url = config["base_url"].rstrip("/")
    return adapter


class SourceRegistry:
    """Adapters keyed by source id, built once from the persisted configs."""

    def __init__(self, adapters: Optional[Dict[str, SourceAdapter]] = None):
        self._adapters: Dict[str, SourceAdapter] = dict(adapters or {})

    @classmethod
    def from_config(cls, settings: Settings, path: Optional[Path] = None) -> "SourceRegistry":
        adapters = {}
        for source_id, config in load_sources(path).items():
            try:
                adapters[source_id] = build_adapter(source_id, config, settings)
            except ConfigurationError as e:
                LOGGER.warning(f"Skipping source {source_id}: {e}")
        return cls(adapters)

    def register(self, adapter: SourceAdapter) -> None:
        self._adapters[adapter.source_id] = adapter

    def get(self, source_id: str) -> Optional[SourceAdapter]:
        return self._adapters.get(source_id)

    def describe(self) -> list[dict]:
        return [
            {"id": source_id, "name": getattr(adapter, "name", source_id)}
            for source_id, adapter in sorted(self._adapters.items())
        ]

    def __contains__(self, source_id: str) -> bool:
        return source_id in self._adapters
