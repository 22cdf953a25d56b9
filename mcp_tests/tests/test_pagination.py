import pytest

from clients.wanikani.pagination import PAGE_DELAY_SECONDS, PaginationWalker
from core.errors import ApiError
from core.models import FetchResult

from conftest import BASE_URL, page


class FakePages:
    def __init__(self, pages, *, from_cache=()):
        self.pages = pages
        self.from_cache = set(from_cache)
        self.calls = []

    async def __call__(self, endpoint, ttl_ms, cache_transform):
        self.calls.append((endpoint, ttl_ms, cache_transform))
        return FetchResult(data=self.pages[endpoint], from_cache=endpoint in self.from_cache)


def _three_pages():
    return {
        "/assignments": page([{"id": 1}, {"id": 2}], BASE_URL + "/assignments?page_after_id=2"),
        "/assignments?page_after_id=2": page([{"id": 3}], BASE_URL + "/assignments?page_after_id=3"),
        "/assignments?page_after_id=3": page([{"id": 4}]),
    }


@pytest.mark.asyncio
async def test_walker_follows_next_url_until_exhausted(sleeps):
    fetch = FakePages(_three_pages())
    walker = PaginationWalker(fetch_page=fetch, base_url=BASE_URL)

    result = await walker.collect_all("/assignments", ttl_ms=1234)

    assert [item["id"] for item in result.items] == [1, 2, 3, 4]
    assert result.from_cache is False
    assert [c[0] for c in fetch.calls] == [
        "/assignments",
        "/assignments?page_after_id=2",
        "/assignments?page_after_id=3",
    ]
    assert all(c[1] == 1234 for c in fetch.calls)
    # A pause between pages, none after the last
    assert sleeps == [PAGE_DELAY_SECONDS, PAGE_DELAY_SECONDS]


@pytest.mark.asyncio
async def test_walker_adds_encoded_updated_after_to_first_page_only(sleeps):
    since = "2024-01-01T00:00:00Z"
    first = "/assignments?updated_after=2024-01-01T00%3A00%3A00Z"
    fetch = FakePages(
        {
            first: page([{"id": 1}], BASE_URL + "/assignments?page_after_id=1&updated_after=2024-01-01T00%3A00%3A00Z"),
            "/assignments?page_after_id=1&updated_after=2024-01-01T00%3A00%3A00Z": page([{"id": 2}]),
        }
    )
    walker = PaginationWalker(fetch_page=fetch, base_url=BASE_URL)

    result = await walker.collect_all("/assignments", since)

    assert [item["id"] for item in result.items] == [1, 2]
    assert fetch.calls[0][0] == first


@pytest.mark.asyncio
async def test_walker_appends_updated_after_to_existing_query(sleeps):
    first = "/subjects?levels=1,2&updated_after=2024-01-01"
    fetch = FakePages({first: page([])})
    walker = PaginationWalker(fetch_page=fetch, base_url=BASE_URL)

    result = await walker.collect_all("/subjects?levels=1,2", "2024-01-01")

    assert result.items == []
    assert fetch.calls[0][0] == first
    assert sleeps == []


@pytest.mark.asyncio
async def test_walker_skips_delay_after_cached_pages(sleeps):
    pages = _three_pages()
    fetch = FakePages(pages, from_cache=list(pages))
    walker = PaginationWalker(fetch_page=fetch, base_url=BASE_URL)

    result = await walker.collect_all("/assignments")

    assert result.from_cache is True
    assert len(result.items) == 4
    assert sleeps == []


@pytest.mark.asyncio
async def test_walker_passes_cache_transform_to_each_page(sleeps):
    def transform(payload):
        return payload

    fetch = FakePages(_three_pages())
    walker = PaginationWalker(fetch_page=fetch, base_url=BASE_URL)

    await walker.collect_all("/assignments", cache_transform=transform)

    assert all(c[2] is transform for c in fetch.calls)


@pytest.mark.asyncio
async def test_walker_rejects_non_collection_payload(sleeps):
    fetch = FakePages({"/assignments": {"object": "report", "data": {"x": 1}}})
    walker = PaginationWalker(fetch_page=fetch, base_url=BASE_URL)

    with pytest.raises(ApiError):
        await walker.collect_all("/assignments")
