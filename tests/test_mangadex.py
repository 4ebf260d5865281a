import math

import pytest

from conftest import FakeResponse, chapter_entry, connection_error, feed_handler
from sources import RawChapterRecord, UpstreamError


def feed_calls(session):
    return [c for c in session.calls if c["url"].endswith("/feed")]


# =============================================================================
# RECORD PARSING
# =============================================================================

def test_record_from_api_full():
    record = RawChapterRecord.from_api(chapter_entry("x", chapter="12.5", pages=20, title="Fight"))

    assert record.id == "x"
    assert record.chapter_number == "12.5"
    assert record.title == "Fight"
    assert record.languages == frozenset({"en"})
    assert record.page_count == 20


def test_record_from_api_degrades_bad_fields():
    record = RawChapterRecord.from_api({
        "id": "y",
        "attributes": {"chapter": 3, "translatedLanguage": "en", "pages": "12"},
    })

    assert record.chapter_number is None
    assert record.languages == frozenset({"en"})
    assert record.page_count is None


def test_record_from_api_requires_id():
    with pytest.raises(ValueError):
        RawChapterRecord.from_api({"attributes": {"chapter": "1"}})
    with pytest.raises(ValueError):
        RawChapterRecord.from_api("not a dict")


# =============================================================================
# PAGINATION
# =============================================================================

@pytest.mark.parametrize("total", [1, 99, 100, 101, 200, 250, 1000])
def test_pagination_issues_ceil_n_over_100_requests(make_client, total):
    client, session = make_client(feed_handler(total))

    records = client.fetch_all_chapters("manga-1")

    assert len(records) == total
    assert len(feed_calls(session)) == math.ceil(total / 100)


def test_feed_request_parameters(make_client):
    client, session = make_client(feed_handler(150))

    client.fetch_all_chapters("abc-123", language="fr")

    first, second = session.calls
    assert first["url"] == "https://api.test/manga/abc-123/feed"
    assert first["params"]["limit"] == 100
    assert first["params"]["offset"] == 0
    assert first["params"]["translatedLanguage[]"] == ["fr"]
    assert first["params"]["order[chapter]"] == "asc"
    assert first["timeout"] == 8
    assert "MangaReader" in first["headers"]["User-Agent"]
    assert second["params"]["offset"] == 100


def test_stops_at_record_ceiling(make_client):
    def endless(url, params):
        offset = int(params["offset"])
        data = [chapter_entry(f"ch-{offset + i}", chapter=str(offset + i)) for i in range(100)]
        return FakeResponse(200, {"data": data, "total": 100000})

    client, session = make_client(endless)

    records = client.fetch_all_chapters("huge")

    assert len(records) == 5000
    assert len(session.calls) == 50


def test_short_page_stops_even_without_total(make_client):
    def handler(url, params):
        return FakeResponse(200, {"data": [chapter_entry("only")]})

    client, session = make_client(handler)

    assert len(client.fetch_all_chapters("m")) == 1
    assert len(session.calls) == 1


def test_skips_entries_without_id(make_client):
    def handler(url, params):
        return FakeResponse(200, {"data": [{"attributes": {}}, chapter_entry("good")], "total": 2})

    client, _ = make_client(handler)

    assert [r.id for r in client.fetch_all_chapters("m")] == ["good"]


# =============================================================================
# RETRY / DEGRADATION
# =============================================================================

def test_two_server_errors_then_success(make_client, sleeper):
    replies = [FakeResponse(500), FakeResponse(500)]
    ok = feed_handler(30)

    def handler(url, params):
        return replies.pop(0) if replies else ok(url, params)

    client, session = make_client(handler)

    records = client.fetch_all_chapters("m")

    assert len(records) == 30
    assert len(session.calls) == 3
    assert sleeper.delays == [1.0, 2.0]


def test_exhausted_retries_return_earlier_pages(make_client, sleeper):
    ok = feed_handler(300)

    def handler(url, params):
        if params["offset"] >= 100:
            return FakeResponse(503)
        return ok(url, params)

    client, session = make_client(handler)

    records = client.fetch_all_chapters("m")

    assert [r.id for r in records] == [f"ch-{i}" for i in range(100)]
    assert len(session.calls) == 1 + 3
    assert sleeper.delays == [1.0, 2.0]


def test_rate_limit_is_retried(make_client, sleeper):
    replies = [FakeResponse(429)]
    ok = feed_handler(5)

    def handler(url, params):
        return replies.pop(0) if replies else ok(url, params)

    client, _ = make_client(handler)

    assert len(client.fetch_all_chapters("m")) == 5
    assert sleeper.delays == [1.0]


def test_transport_errors_are_retried(make_client, sleeper):
    replies = [connection_error()]
    ok = feed_handler(5)

    def handler(url, params):
        return replies.pop(0) if replies else ok(url, params)

    client, _ = make_client(handler)

    assert len(client.fetch_all_chapters("m")) == 5
    assert sleeper.delays == [1.0]


def test_malformed_json_is_retried(make_client, sleeper):
    replies = [FakeResponse(200, body_error=True)]
    ok = feed_handler(5)

    def handler(url, params):
        return replies.pop(0) if replies else ok(url, params)

    client, _ = make_client(handler)

    assert len(client.fetch_all_chapters("m")) == 5
    assert sleeper.delays == [1.0]


def test_client_error_returns_immediately(make_client, sleeper):
    ok = feed_handler(250)

    def handler(url, params):
        if params["offset"] == 100:
            return FakeResponse(404)
        return ok(url, params)

    client, session = make_client(handler)

    records = client.fetch_all_chapters("m")

    assert len(records) == 100
    assert len(session.calls) == 2
    assert sleeper.delays == []


def test_missing_data_array_stops_without_retry(make_client, sleeper):
    client, session = make_client(lambda url, params: FakeResponse(200, {"result": "error"}))

    assert client.fetch_all_chapters("m") == []
    assert len(session.calls) == 1
    assert sleeper.delays == []


def test_total_failure_returns_empty(make_client):
    client, session = make_client(lambda url, params: connection_error())

    assert client.fetch_all_chapters("m") == []
    assert client.get_chapters("m") == []
    assert len(session.calls) == 6


# =============================================================================
# AGGREGATION ENTRYPOINT
# =============================================================================

def test_get_chapters_reduces_feed(make_client):
    def handler(url, params):
        data = [
            chapter_entry("a", chapter="2", pages=5),
            chapter_entry("b", chapter="1", pages=8),
            chapter_entry("c", chapter="1", pages=12),
            chapter_entry("d", chapter="3", languages=("fr",)),
        ]
        return FakeResponse(200, {"data": data, "total": 4})

    client, _ = make_client(handler)

    chapters = client.get_chapters("m")

    assert [c.to_dict() for c in chapters] == [
        {"id": "c", "title": "Chapter 1", "chapter": "1", "pages": 12},
        {"id": "a", "title": "Chapter 2", "chapter": "2", "pages": 5},
    ]


# =============================================================================
# CATALOG PASS-THROUGH
# =============================================================================

def manga_entry(manga_id, title, description="A story.", cover="cover.jpg", mangaplus=None):
    relationships = []
    if cover:
        relationships.append({"id": "cov", "type": "cover_art", "attributes": {"fileName": cover}})
    links = {"mangaplus": mangaplus} if mangaplus else {}
    return {
        "id": manga_id,
        "type": "manga",
        "attributes": {
            "title": {"en": title},
            "description": {"en": description} if description else {},
            "links": links,
        },
        "relationships": relationships,
    }


def test_search_builds_params_and_drops_incomplete(make_client):
    def handler(url, params):
        return FakeResponse(200, {"data": [
            manga_entry("m1", "Berserk", mangaplus="100"),
            manga_entry("m2", "No Cover", cover=None),
            manga_entry("m3", "No Blurb", description=None),
        ]})

    client, session = make_client(handler)

    results = client.search("berserk", limit=5, tag_ids=["t1", "t2"])

    params = session.calls[0]["params"]
    assert session.calls[0]["url"] == "https://api.test/manga"
    assert params["title"] == "berserk"
    assert params["limit"] == 5
    assert params["includedTags[]"] == ["t1", "t2"]
    assert params["order[followedCount]"] == "desc"
    assert [m.id for m in results] == ["m1"]
    assert results[0].to_dict() == {
        "id": "m1",
        "title": "Berserk",
        "coverImage": "https://uploads.mangadex.org/covers/m1/cover.jpg.256.jpg",
        "description": "A story.",
        "mangaPlusUrl": "https://mangaplus.shueisha.co.jp/titles/100",
    }


def test_search_without_query_omits_title(make_client):
    client, session = make_client(lambda url, params: FakeResponse(200, {"data": []}))

    client.search()

    assert "title" not in session.calls[0]["params"]


def test_search_raises_after_retries(make_client, sleeper):
    client, _ = make_client(lambda url, params: FakeResponse(502))

    with pytest.raises(UpstreamError):
        client.search("x")
    assert sleeper.delays == [1.0, 2.0]


def test_get_tags(make_client):
    def handler(url, params):
        return FakeResponse(200, {"data": [
            {"id": "t1", "attributes": {"name": {"en": "Action"}, "group": "genre"}},
            {"attributes": {"name": {"en": "Broken"}}},
        ]})

    client, session = make_client(handler)

    tags = client.get_tags()

    assert session.calls[0]["url"] == "https://api.test/manga/tag"
    assert [t.to_dict() for t in tags] == [{"id": "t1", "name": "Action", "group": "genre"}]


def test_featured_prefers_shortest_match_and_skips_excluded(make_client):
    def handler(url, params):
        if params["title"] == "Berserk":
            return FakeResponse(200, {"data": [
                manga_entry("spin", "Berserk of Gluttony"),
                manga_entry("long", "Berserk Deluxe Edition"),
                manga_entry("main", "Berserk"),
            ]})
        return FakeResponse(200, {"data": []})

    client, _ = make_client(handler)

    featured = client.get_featured()

    assert [m.id for m in featured] == ["main"]


def test_featured_tries_next_term_after_failure(make_client):
    def handler(url, params):
        if params["title"] == "Kage no Jitsuryokusha ni Naritakute":
            return FakeResponse(400)
        if params["title"] == "The Eminence in Shadow":
            return FakeResponse(200, {"data": [manga_entry("eminence", "The Eminence in Shadow")]})
        return FakeResponse(200, {"data": []})

    client, _ = make_client(handler)

    assert [m.id for m in client.get_featured()] == ["eminence"]


def test_get_pages(make_client):
    def handler(url, params):
        return FakeResponse(200, {
            "baseUrl": "https://cdn.test",
            "chapter": {"hash": "h4sh", "data": ["1.png", "2.png"]},
        })

    client, session = make_client(handler)

    pages = client.get_pages("ch-1")

    assert session.calls[0]["url"] == "https://api.test/at-home/server/ch-1"
    assert [p.url for p in pages] == [
        "https://cdn.test/data/h4sh/1.png",
        "https://cdn.test/data/h4sh/2.png",
    ]
    assert [p.index for p in pages] == [0, 1]


def test_get_pages_without_data(make_client):
    client, _ = make_client(lambda url, params: FakeResponse(200, {"baseUrl": "https://cdn.test"}))

    assert client.get_pages("ch-1") == []


def chapter_info_payload(chapter_id="ch-5", manga_id="manga-1"):
    return {"data": {
        "id": chapter_id,
        "type": "chapter",
        "attributes": {"chapter": "5"},
        "relationships": [
            {"id": manga_id, "type": "manga", "attributes": {
                "title": {"en": "Horimiya"},
                "description": {"en": "School life."},
            }},
            {"id": "cov", "type": "cover_art", "attributes": {"fileName": "c.jpg"}},
        ],
    }}


def test_get_chapter_info(make_client):
    client, _ = make_client(lambda url, params: FakeResponse(200, chapter_info_payload()))

    info = client.get_chapter_info("ch-5")

    assert info.manga_id == "manga-1"
    assert info.manga_title == "Horimiya"
    assert info.manga_description == "School life."
    assert info.cover_url == "https://uploads.mangadex.org/covers/manga-1/c.jpg.256.jpg"


def test_get_chapter_info_not_found(make_client):
    client, _ = make_client(lambda url, params: FakeResponse(404))

    assert client.get_chapter_info("missing") is None


def test_reader_context(make_client):
    def handler(url, params):
        if url.endswith("/chapter/ch-5"):
            return FakeResponse(200, chapter_info_payload())
        if url.endswith("/feed"):
            data = [chapter_entry(f"ch-{n}", chapter=str(n)) for n in (4, 5, 6)]
            return FakeResponse(200, {"data": data, "total": 3})
        if "/at-home/server/" in url:
            return FakeResponse(200, {"baseUrl": "https://cdn.test", "chapter": {"hash": "h", "data": ["a.png"]}})
        return FakeResponse(404)

    client, _ = make_client(handler)

    context = client.get_reader_context("ch-5")

    assert context.current.id == "ch-5"
    assert context.prev_id == "ch-4"
    assert context.next_id == "ch-6"
    assert [p.url for p in context.pages] == ["https://cdn.test/data/h/a.png"]
    assert context.to_dict()["chapter"]["mangaTitle"] == "Horimiya"


def test_client_from_environment(monkeypatch):
    from sources import get_client, set_client

    monkeypatch.setenv("MANGADEX_API_URL", "https://mirror.test/")
    monkeypatch.setenv("MANGADEX_LANGUAGE", "es")
    monkeypatch.setenv("MANGADEX_TIMEOUT", "3")
    monkeypatch.setenv("MANGADEX_MAX_ATTEMPTS", "5")
    monkeypatch.setenv("MANGADEX_RETRY_BASE_DELAY", "0.5")
    set_client(None)
    try:
        client = get_client()
        assert client.base_url == "https://mirror.test"
        assert client.language == "es"
        assert client.timeout == 3.0
        assert client.retry_policy.delays() == [0.5, 1.0, 2.0, 4.0]
        assert get_client() is client
    finally:
        set_client(None)
