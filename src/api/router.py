"""Request router: typed dispatch from (method, route template) to job operations."""

from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Callable, Dict, Optional
from urllib.parse import parse_qs, unquote, urlsplit

from src.acquisition.registry import SourceRegistry
from src.acquisition.storage import list_artifacts
from src.config import Settings, save_settings
from src.errors import ConfigurationError, NotFoundError, RateLimitedError, ResolutionError, UnknownJobError
from src.jobs.driver import JobDriver
from src.jobs.job import JobView
from src.jobs.registry import JobRegistry
from src.utils.logger import logger as LOGGER


@dataclass
class Response:
    status: int
    body: dict

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


@dataclass(frozen=True)
class Route:
    method: str
    template: str
    handler: str
    segments: tuple[str, ...] = field(init=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "segments", tuple(s for s in self.template.split("/") if s))

    def match(self, path_segments: list[str]) -> Optional[Dict[str, str]]:
        """Return path parameters if the path fits this template, else None."""
        if len(path_segments) != len(self.segments):
            return None

        params = {}
        for expected, actual in zip(self.segments, path_segments):
            if expected.startswith("{") and expected.endswith("}"):
                if not actual:
                    return None
                params[expected[1:-1]] = unquote(actual)
            elif expected != actual:
                return None
        return params


ROUTES = (
    Route("GET", "/health-check", "handle_health_check"),
    Route("POST", "/jobs", "handle_enqueue"),
    Route("GET", "/jobs/{job_id}", "handle_poll"),
    Route("DELETE", "/jobs/{job_id}", "handle_acknowledge"),
    Route("GET", "/sources", "handle_sources"),
    Route("GET", "/sources/{source_id}/search", "handle_search"),
    Route("GET", "/sources/{source_id}/manga/{manga_id}", "handle_manga"),
    Route("GET", "/sources/{source_id}/manga/{manga_id}/chapters", "handle_chapters"),
    Route("GET", "/sources/{source_id}/manga/{manga_id}/chapters/{chapter_id}/pages", "handle_pages"),
    Route("GET", "/library", "handle_library"),
    Route("GET", "/settings", "handle_get_settings"),
    Route("PUT", "/settings", "handle_update_settings"),
)


def _error(status: int, message: str) -> Response:
    return Response(status, {"error": message})


class Router:
    """Maps enqueue/poll calls onto the job registry and driver.

    Holds no job state of its own beyond references to the injected
    registry, driver and sources, plus the settings served by /settings.
    """

    def __init__(self, registry: JobRegistry, driver: JobDriver, sources: SourceRegistry,
                 settings: Optional[Settings] = None, settings_path: Optional[Path] = None):
        self.registry = registry
        self.driver = driver
        self.sources = sources
        self.settings = settings or Settings()
        self.settings_path = settings_path
        self.routes: Dict[tuple[str, str], Route] = {(r.method, r.template): r for r in ROUTES}

    # Logical operations

    def enqueue(self, source_id: str, manga_id: str, chapter_id: str) -> str:
        """Register a chapter download and return its job id; performs no I/O."""
        for name, value in (("source_id", source_id), ("manga_id", manga_id), ("chapter_id", chapter_id)):
            if not isinstance(value, str) or not value:
                raise ValueError(f"{name} must be a non-empty string")

        self.registry.evict_expired()

        job_id, created = self.registry.create_or_get_active(source_id, manga_id, chapter_id)
        if created:
            LOGGER.info(f"Enqueued job {job_id} for {source_id}:{manga_id}/{chapter_id}")
        else:
            LOGGER.info(f"Chapter {source_id}:{manga_id}/{chapter_id} already queued as {job_id}")
        return job_id

    def poll(self, job_id: str) -> JobView:
        """Advance the job by one step and return its status; never raises."""
        try:
            self.registry.evict_expired()
            job = self.registry.mutate(job_id, self.driver.advance)
        except UnknownJobError as e:
            return JobView.failed(str(e))
        except Exception as e:
            LOGGER.exception(f"Poll of job {job_id} failed")
            return JobView.failed(f"Internal error while polling job {job_id}: {e}")

        return JobView.from_job(job)

    def acknowledge(self, job_id: str) -> bool:
        """Forget a job and remove its staging directory."""
        try:
            self.registry.remove(job_id)
        except UnknownJobError:
            return False
        return True

    # Dispatch table

    def resolve_route(self, method: str, path: str) -> tuple[Optional[Route], Dict[str, str], bool]:
        """Return (route, path params, path_known) for a request line."""
        segments = [s for s in path.split("/") if s]
        path_known = False
        for (route_method, _), route in self.routes.items():
            params = route.match(segments)
            if params is None:
                continue
            path_known = True
            if route_method == method.upper():
                return route, params, True
        return None, {}, path_known

    def dispatch(self, method: str, path: str, params: Optional[dict] = None,
                 body: Optional[dict] = None) -> Response:
        """Handle one request; always returns a Response."""
        split = urlsplit(path)
        query = {k: v[-1] for k, v in parse_qs(split.query).items()}
        query.update(params or {})

        route, path_params, path_known = self.resolve_route(method, split.path)
        if route is None:
            if path_known:
                return _error(405, f"Method {method.upper()} not allowed for {split.path}")
            return _error(404, f"Unknown endpoint: {split.path}")

        handler: Callable[..., Response] = getattr(self, route.handler)
        try:
            return handler(path_params=path_params, query=query, body=body or {})
        except Exception as e:
            LOGGER.exception(f"{method.upper()} {split.path} failed")
            return _error(500, f"Internal error: {e}")

    def handle_health_check(self, path_params, query, body) -> Response:
        return Response(200, {"status": "ok", "jobs": len(self.registry)})

    def handle_enqueue(self, path_params, query, body) -> Response:
        requested = {name: body.get(name, query.get(name)) for name in ("source_id", "manga_id", "chapter_id")}
        missing = [name for name, value in requested.items() if not value]
        if missing:
            return _error(400, f"Missing parameter(s): {', '.join(missing)}")

        try:
            job_id = self.enqueue(**requested)
        except ValueError as e:
            return _error(400, str(e))
        return Response(202, {"job_id": job_id})

    def handle_poll(self, path_params, query, body) -> Response:
        return Response(200, self.poll(path_params["job_id"]).to_dict())

    def handle_acknowledge(self, path_params, query, body) -> Response:
        job_id = path_params["job_id"]
        if not self.acknowledge(job_id):
            return _error(404, f"Unknown job: {job_id}")
        return Response(200, {"job_id": job_id, "removed": True})

    def handle_sources(self, path_params, query, body) -> Response:
        return Response(200, {"sources": self.sources.describe()})

    def handle_search(self, path_params, query, body) -> Response:
        source_id = path_params["source_id"]
        text = query.get("query", "")
        try:
            page = int(query.get("page", 1))
        except (TypeError, ValueError):
            return _error(400, f"Invalid page: {query.get('page')!r}")
        if page < 1:
            return _error(400, f"Invalid page: {page}")

        return self._call_source(
            source_id,
            lambda adapter: {
                "source_id": source_id,
                "query": text,
                "page": page,
                "results": [m.to_dict() for m in adapter.search(text, page=page)],
            },
        )

    def handle_manga(self, path_params, query, body) -> Response:
        return self._call_source(
            path_params["source_id"],
            lambda adapter: adapter.manga(path_params["manga_id"]).to_dict(),
        )

    def handle_chapters(self, path_params, query, body) -> Response:
        source_id = path_params["source_id"]
        manga_id = path_params["manga_id"]
        return self._call_source(
            source_id,
            lambda adapter: {
                "source_id": source_id,
                "manga_id": manga_id,
                "chapters": [c.to_dict() for c in adapter.chapters(manga_id)],
            },
        )

    def handle_pages(self, path_params, query, body) -> Response:
        source_id = path_params["source_id"]
        manga_id = path_params["manga_id"]
        chapter_id = path_params["chapter_id"]
        return self._call_source(
            source_id,
            lambda adapter: {
                "source_id": source_id,
                "manga_id": manga_id,
                "chapter_id": chapter_id,
                "pages": [p.to_dict() for p in self.driver.resolver.resolve(
                    source_id, manga_id, chapter_id)],
            },
        )

    def handle_library(self, path_params, query, body) -> Response:
        return Response(200, {"chapters": list_artifacts(self.driver.storage_root)})

    def handle_get_settings(self, path_params, query, body) -> Response:
        return Response(200, asdict(self.settings))

    def handle_update_settings(self, path_params, query, body) -> Response:
        """Validate and persist changed settings.

        The running engine keeps the values it was built with; new values
        apply from the next start.
        """
        known = {f.name for f in fields(Settings)}
        unknown = sorted(set(body) - known)
        if unknown:
            return _error(400, f"Unknown setting(s): {', '.join(unknown)}")

        try:
            updated = Settings(**{**asdict(self.settings), **body})
        except ConfigurationError as e:
            return _error(400, str(e))

        save_settings(updated, self.settings_path)
        self.settings = updated
        return Response(200, asdict(updated))

    def _call_source(self, source_id: str, fn) -> Response:
        adapter = self.sources.get(source_id)
        if adapter is None:
            return _error(404, f"Unknown source: {source_id}")

        try:
            return Response(200, fn(adapter))
        except NotFoundError as e:
            return _error(404, str(e))
        except RateLimitedError as e:
            return _error(429, str(e))
        except ResolutionError as e:
            return _error(502, str(e))
