"""Read-only course catalog collaborator.

The catalog is owned by the content service. This service only needs two
facts from it: which track a course belongs to, and which published
courses a track has.
"""

from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, Optional, Protocol

import httpx
from aiocache import Cache
import structlog

from app.core.config import settings
from app.core.exceptions import CatalogUnavailableError, NotFoundError

logger = structlog.get_logger()


@dataclass(frozen=True)
class CatalogCourse:
    id: str
    track_id: str
    title: Optional[str] = None
    is_published: bool = True


class CatalogClient(Protocol):
    async def get_course(self, course_id: str) -> CatalogCourse:
        ...

    async def published_course_ids(self, track_id: str) -> FrozenSet[str]:
        ...


class HttpCatalogClient:
    """Catalog lookups against the content service, cached."""

    def __init__(self, client: httpx.AsyncClient, cache: Cache, base_url: str, ttl: int = None):
        self.client = client
        self.cache = cache
        self.base_url = base_url.rstrip("/")
        self.ttl = ttl if ttl is not None else settings.CATALOG_CACHE_TTL

    async def get_course(self, course_id: str) -> CatalogCourse:
        cache_key = f"catalog:course:{course_id}"
        cached = await self.cache.get(cache_key)
        if cached:
            return CatalogCourse(**cached)

        data = await self._get_json(f"/courses/{course_id}", not_found=f"Course {course_id} not found")
        course = CatalogCourse(
            id=str(data["id"]),
            track_id=str(data["trackId"]),
            title=data.get("title"),
            is_published=data.get("isPublished", True),
        )
        await self.cache.set(cache_key, course.__dict__, ttl=self.ttl)
        return course

    async def published_course_ids(self, track_id: str) -> FrozenSet[str]:
        cache_key = f"catalog:track:{track_id}:published"
        cached = await self.cache.get(cache_key)
        if cached is not None:
            return frozenset(cached)

        data = await self._get_json(f"/tracks/{track_id}", not_found=f"Track {track_id} not found")
        # The content service only lists published courses for a track
        course_ids = sorted(str(course["id"]) for course in data.get("courses", []))
        await self.cache.set(cache_key, course_ids, ttl=self.ttl)
        return frozenset(course_ids)

    async def _get_json(self, path: str, not_found: str) -> dict:
        try:
            response = await self.client.get(f"{self.base_url}{path}")
        except httpx.HTTPError as e:
            logger.error("Catalog request failed", path=path, error=str(e))
            raise CatalogUnavailableError()

        if response.status_code == 404:
            raise NotFoundError(not_found)
        if response.status_code >= 400:
            logger.error("Catalog returned error", path=path, status_code=response.status_code)
            raise CatalogUnavailableError()
        return response.json()


class InMemoryCatalog:
    """Static catalog for local runs and tests."""

    def __init__(self, courses: Iterable[CatalogCourse] = ()):
        self._courses: Dict[str, CatalogCourse] = {}
        for course in courses:
            self.add_course(course)

    def add_course(self, course: CatalogCourse) -> None:
        self._courses[str(course.id)] = course

    async def get_course(self, course_id: str) -> CatalogCourse:
        course = self._courses.get(str(course_id))
        if course is None:
            raise NotFoundError(f"Course {course_id} not found")
        return course

    async def published_course_ids(self, track_id: str) -> FrozenSet[str]:
        return frozenset(
            course.id for course in self._courses.values()
            if course.track_id == str(track_id) and course.is_published
        )
