"""Acquisition CLI commands."""

from pathlib import Path

from tqdm import tqdm

from src.acquisition import registry
from src.acquisition.registry import SourceRegistry
from src.acquisition.storage import get_staging_root, list_artifacts, remove_tree
from src.api.app import create_app
from src.config import load_settings
from src.errors import ConfigurationError, ResolutionError


def _load_settings(args):
    settings = load_settings()
    if getattr(args, "storage_path", None):
        settings.storage_path = args.storage_path
    return settings


def _get_adapter(source_id: str):
    sources = SourceRegistry.from_config(load_settings())
    adapter = sources.get(source_id)
    if adapter is None:
        print(f"Source not found: {source_id}")
    return adapter


def cmd_add_source(args):
    """Add a new source adapter."""
    kwargs = {}
    if args.path:
        kwargs["path"] = str(Path(args.path).expanduser().resolve())
    if args.base_url:
        kwargs["base_url"] = args.base_url

    try:
        registry.add_source(args.source_id, args.type, **kwargs)
    except ConfigurationError as e:
        print(f"Error: {e}")
        return 1

    print(f"Added {args.type} source: {args.source_id}")
    return 0


def cmd_remove_source(args):
    """Remove a user-registered source."""
    if not registry.remove_source(args.source_id):
        print(f"Source not found or built in: {args.source_id}")
        return 1

    print(f"Removed source: {args.source_id}")
    return 0


def cmd_list_sources(args):
    """List all registered sources."""
    sources = registry.load_sources()

    print("Registered sources:")
    for source_id, config in sorted(sources.items()):
        source_type = config.get("type", "unknown")
        if source_type == "filesystem":
            print(f"  - {source_id} ({source_type}: {config.get('path', '?')})")
        else:
            print(f"  - {source_id} ({source_type})")

    return 0


def cmd_search(args):
    """Search for series in a source."""
    adapter = _get_adapter(args.source_id)
    if adapter is None:
        return 1

    try:
        results = adapter.search(args.query, page=args.page)
    except ResolutionError as e:
        print(f"Search failed: {e}")
        return 1

    if not results:
        print(f"No results found for: {args.query}")
        return 0

    print(f"Found {len(results)} results for '{args.query}':\n")
    for idx, manga in enumerate(results, 1):
        print(f"{idx}. {manga.title}")
        print(f"   ID: {manga.manga_id}")
        if manga.cover_url:
            print(f"   Cover: {manga.cover_url}")
        print()

    return 0


def cmd_info(args):
    """Show the details of one series."""
    adapter = _get_adapter(args.source_id)
    if adapter is None:
        return 1

    try:
        manga = adapter.manga(args.manga_id)
    except ResolutionError as e:
        print(f"Failed to load series: {e}")
        return 1

    print(manga.title)
    print(f"   ID: {manga.manga_id}")
    for label, value in (("Author", manga.author), ("Status", manga.status), ("Cover", manga.cover_url)):
        if value:
            print(f"   {label}: {value}")
    if manga.tags:
        print(f"   Tags: {', '.join(manga.tags)}")
    if manga.description:
        print(f"\n{manga.description}")

    return 0


def cmd_chapters(args):
    """List chapters of a series."""
    adapter = _get_adapter(args.source_id)
    if adapter is None:
        return 1

    try:
        chapters = adapter.chapters(args.manga_id)
    except ResolutionError as e:
        print(f"Failed to list chapters: {e}")
        return 1

    if not chapters:
        print(f"No chapters found for series: {args.manga_id}")
        return 0

    print(f"Found {len(chapters)} chapters for {args.manga_id}:")
    for chapter in chapters:
        print(f"  - {chapter.title}  [{chapter.chapter_id}]")

    return 0


def run_download(router, source_id: str, manga_id: str, chapter_id: str, progress: bool = True) -> dict:
    """Enqueue one chapter and poll it to a terminal state.

    Returns:
        The final poll response as a dict
    """
    job_id = router.enqueue(source_id, manga_id, chapter_id)

    with tqdm(total=0, unit="page", desc=chapter_id, disable=not progress, leave=False) as pbar:
        while True:
            view = router.poll(job_id)
            if view.type != "PENDING":
                router.acknowledge(job_id)
                return view.to_dict()

            if pbar.total != view.data["total"]:
                pbar.total = view.data["total"]
                pbar.refresh()
            pbar.update(view.data["current"] - pbar.n)


def cmd_download(args):
    """Download one or more chapters into CBZ archives."""
    router = create_app(settings=_load_settings(args))

    if router.sources.get(args.source_id) is None:
        print(f"Source not found: {args.source_id}")
        return 1

    failures = 0
    for chapter_id in args.chapter_ids:
        result = run_download(router, args.source_id, args.manga_id, chapter_id, progress=not args.quiet)

        if result["type"] == "COMPLETED":
            print(f"✓ {chapter_id}: {result['data']['artifact_path']}")
            for warning in result["data"]["warnings"][:5]:  # Show first 5 warnings
                print(f"    - {warning}")
        else:
            failures += 1
            print(f"✗ {chapter_id}: {result['data']['message']}")

    return 1 if failures else 0


def cmd_library(args):
    """List chapters already packaged in the storage directory."""
    settings = _load_settings(args)
    artifacts = list_artifacts(settings.storage_root())

    if not artifacts:
        print("No downloaded chapters")
        return 0

    print(f"{len(artifacts)} downloaded chapters:")
    for artifact in artifacts:
        size_kb = artifact["size_bytes"] / 1024
        print(f"  - {artifact['source_dir']}/{artifact['manga_dir']}/{artifact['chapter']} ({size_kb:.0f} KB)")

    return 0


def cmd_clean(args):
    """Remove staging directories left behind by abandoned downloads."""
    settings = _load_settings(args)
    staging_root = get_staging_root(settings.storage_root())

    if not staging_root.exists():
        print("Nothing to clean")
        return 0

    leftovers = [p for p in staging_root.rglob("*") if p.is_dir() and not any(c.is_dir() for c in p.iterdir())]
    remove_tree(staging_root)
    print(f"Removed {len(leftovers)} staging directories from {staging_root}")
    return 0


def setup_acquire_commands(subparsers):
    """Setup acquisition subcommands."""
    # add-source command
    add_source_parser = subparsers.add_parser("add-source", help="Add a new source adapter")
    add_source_parser.add_argument("source_id", help="Unique identifier for the source")
    add_source_parser.add_argument("--type", required=True, choices=registry.SOURCE_TYPES, help="Source adapter type")
    add_source_parser.add_argument("--path", help="Path for filesystem source (required if type=filesystem)")
    add_source_parser.add_argument("--base-url", help="Alternative site URL (mirrors)")
    add_source_parser.set_defaults(func=cmd_add_source)

    # remove-source command
    remove_source_parser = subparsers.add_parser("remove-source", help="Remove a registered source")
    remove_source_parser.add_argument("source_id", help="Source identifier")
    remove_source_parser.set_defaults(func=cmd_remove_source)

    # sources command
    list_sources_parser = subparsers.add_parser("sources", help="List registered sources")
    list_sources_parser.set_defaults(func=cmd_list_sources)

    # search command
    search_parser = subparsers.add_parser("search", help="Search for series in a source")
    search_parser.add_argument("source_id", help="Source identifier")
    search_parser.add_argument("query", help="Search query (series title)")
    search_parser.add_argument("--page", type=int, default=1, help="Result page (default: 1)")
    search_parser.set_defaults(func=cmd_search)

    # info command
    info_parser = subparsers.add_parser("info", help="Show series details")
    info_parser.add_argument("source_id", help="Source identifier")
    info_parser.add_argument("manga_id", help="Series identifier")
    info_parser.set_defaults(func=cmd_info)

    # chapters command
    chapters_parser = subparsers.add_parser("chapters", help="List chapters of a series")
    chapters_parser.add_argument("source_id", help="Source identifier")
    chapters_parser.add_argument("manga_id", help="Series identifier")
    chapters_parser.set_defaults(func=cmd_chapters)

    # download command
    download_parser = subparsers.add_parser("download", help="Download chapters into CBZ archives")
    download_parser.add_argument("source_id", help="Source identifier")
    download_parser.add_argument("manga_id", help="Series identifier")
    download_parser.add_argument("chapter_ids", nargs="+", help="Chapter identifier(s)")
    download_parser.add_argument("--quiet", action="store_true", help="Hide the progress bar")
    download_parser.set_defaults(func=cmd_download)

    # library command
    library_parser = subparsers.add_parser("library", help="List downloaded chapters")
    library_parser.set_defaults(func=cmd_library)

    # clean command
    clean_parser = subparsers.add_parser("clean", help="Remove leftover staging directories")
    clean_parser.set_defaults(func=cmd_clean)
