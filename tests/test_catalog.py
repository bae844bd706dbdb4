import httpx
import pytest
from aiocache import Cache

from app.core.catalog import CatalogCourse, HttpCatalogClient, InMemoryCatalog
from app.core.exceptions import CatalogUnavailableError, NotFoundError


COURSES = {
    "py-101": {"id": "py-101", "title": "Python Basics", "trackId": "python", "isPublished": True},
}
TRACKS = {
    "python": {"track": {"id": "python"}, "courses": [{"id": "py-101"}, {"id": "py-201"}]},
}


@pytest.fixture
def requests_seen():
    return []


@pytest.fixture
async def cache():
    cache = Cache(Cache.MEMORY)
    await cache.clear()
    yield cache
    await cache.clear()


def content_service(requests_seen, fail=False):
    def handler(request: httpx.Request) -> httpx.Response:
        requests_seen.append(request.url.path)
        if fail:
            return httpx.Response(503, json={"error": "down"})
        kind, _, key = request.url.path.strip("/").partition("/")
        data = {"courses": COURSES, "tracks": TRACKS}[kind].get(key)
        if data is None:
            return httpx.Response(404, json={"error": "not found"})
        return httpx.Response(200, json=data)
    return httpx.MockTransport(handler)


class TestHttpCatalogClient:

    async def test_course_lookup(self, cache, requests_seen):
        async with httpx.AsyncClient(transport=content_service(requests_seen)) as client:
            catalog = HttpCatalogClient(client, cache, "http://content/")

            course = await catalog.get_course("py-101")

        assert course == CatalogCourse(id="py-101", track_id="python", title="Python Basics")
        assert requests_seen == ["/courses/py-101"]

    async def test_lookups_are_cached(self, cache, requests_seen):
        async with httpx.AsyncClient(transport=content_service(requests_seen)) as client:
            catalog = HttpCatalogClient(client, cache, "http://content")

            await catalog.get_course("py-101")
            await catalog.get_course("py-101")
            assert await catalog.published_course_ids("python") == {"py-101", "py-201"}
            assert await catalog.published_course_ids("python") == {"py-101", "py-201"}

        assert requests_seen == ["/courses/py-101", "/tracks/python"]

    async def test_unknown_course(self, cache, requests_seen):
        async with httpx.AsyncClient(transport=content_service(requests_seen)) as client:
            catalog = HttpCatalogClient(client, cache, "http://content")

            with pytest.raises(NotFoundError):
                await catalog.get_course("nope")

    async def test_service_errors_are_unavailable(self, cache, requests_seen):
        async with httpx.AsyncClient(transport=content_service(requests_seen, fail=True)) as client:
            catalog = HttpCatalogClient(client, cache, "http://content")

            with pytest.raises(CatalogUnavailableError) as exc_info:
                await catalog.published_course_ids("python")

        assert exc_info.value.status_code == 502

    async def test_transport_errors_are_unavailable(self, cache):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            catalog = HttpCatalogClient(client, cache, "http://content")

            with pytest.raises(CatalogUnavailableError):
                await catalog.get_course("py-101")


class TestInMemoryCatalog:

    async def test_lists_only_published_courses(self, catalog):
        assert await catalog.published_course_ids("python") == {"py-101", "py-201"}
        assert await catalog.published_course_ids("unknown") == frozenset()

    async def test_add_course(self):
        catalog = InMemoryCatalog()
        catalog.add_course(CatalogCourse(id="c1", track_id="t1"))

        assert (await catalog.get_course("c1")).track_id == "t1"
