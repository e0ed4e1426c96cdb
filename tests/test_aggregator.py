from __future__ import annotations

import asyncio
import hashlib
import json
from datetime import datetime, timezone

import httpx
import pytest

from src.tradelog.news.aggregator import (
    NEWS_QUERY,
    NewsAggregator,
    NewsApiProvider,
    NewsProviderError,
    build_snapshot,
    dedupe,
    sort_by_published,
    tag_coins,
)
from src.tradelog.news.schemas import NewsItem


def _item(title: str, url: str = "", published_at: str | None = None) -> NewsItem:
    return NewsItem(id=title, title=title, url=url, published_at=published_at)


class StaticProvider:
    def __init__(self, name: str, items: list[NewsItem] | None = None, error: Exception | None = None):
        self.name = name
        self.items = items or []
        self.error = error

    async def fetch(self) -> list[NewsItem]:
        if self.error:
            raise self.error
        return self.items


def test_tag_coins_matches_names_and_tickers():
    assert tag_coins("Bitcoin rallies as Ethereum dips") == ["BTC", "ETH"]
    assert tag_coins("ETH and btc move; DOGE flat") == ["BTC", "ETH", "DOGE"]
    assert tag_coins("Ripple and Cardano news, SOL too") == ["SOL", "ADA", "XRP"]


def test_tag_coins_requires_word_boundaries():
    assert tag_coins("Stock markets close higher") == []
    assert tag_coins("The soldier read the method") == []
    assert tag_coins("") == []


def test_dedupe_keeps_first_by_url_then_title():
    items = [
        _item("first", url="https://a.com/1"),
        _item("second", url="https://a.com/1"),
        _item("same title"),
        _item("same title"),
        _item("other", url="https://a.com/2"),
    ]

    result = dedupe(items)

    assert [i.title for i in result] == ["first", "same title", "other"]


def test_dedupe_is_idempotent():
    items = [
        _item("a", url="https://a.com/1"),
        _item("b", url="https://a.com/1"),
        _item("c"),
        _item("c"),
    ]
    once = dedupe(items)

    assert dedupe(once) == once


def test_sort_by_published_newest_first_with_missing_last():
    items = [
        _item("jan1", published_at="2024-01-01"),
        _item("jan3", published_at="2024-01-03"),
        _item("none", published_at=None),
    ]

    assert [i.title for i in sort_by_published(items)] == ["jan3", "jan1", "none"]


def test_sort_by_published_is_stable_and_tolerates_garbage():
    items = [
        _item("bad", published_at="not a date"),
        _item("a", published_at="2024-05-01T10:00:00Z"),
        _item("missing"),
        _item("b", published_at="2024-05-01T10:00:00+00:00"),
    ]

    assert [i.title for i in sort_by_published(items)] == ["a", "b", "bad", "missing"]


def test_build_snapshot_count_matches_items():
    items = [_item("a"), _item("b")]
    now = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

    snapshot = build_snapshot(items, now=now)

    assert snapshot.count == len(snapshot.items) == 2
    assert snapshot.generated_at == "2024-01-02T03:04:05Z"


@pytest.mark.asyncio
async def test_newsapi_provider_normalizes_articles():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={
                "status": "ok",
                "articles": [
                    {
                        "title": "Bitcoin hits new high",
                        "description": "Solana follows",
                        "content": "More text",
                        "url": "https://www.coindesk.com/a",
                        "urlToImage": "https://www.coindesk.com/a.png",
                        "source": {"name": "CoinDesk"},
                        "publishedAt": "2024-03-01T12:00:00Z",
                    },
                    {"title": "[Removed]", "url": "https://removed.com"},
                    {"title": "No url here", "description": None, "source": None},
                ],
            },
        )

    provider = NewsApiProvider(api_key="secret", page_size=500, transport=httpx.MockTransport(handler))
    items = await provider.fetch()
    await provider.close()

    request = seen[0]
    assert request.headers["X-Api-Key"] == "secret"
    assert "secret" not in str(request.url)
    assert request.url.params["q"] == NEWS_QUERY
    assert request.url.params["language"] == "en"
    assert request.url.params["sortBy"] == "publishedAt"
    assert request.url.params["pageSize"] == "100"

    assert len(items) == 2
    first = items[0]
    assert first.id == hashlib.sha1(b"https://www.coindesk.com/a").hexdigest()[:24]
    assert first.source == "newsapi"
    assert first.source_name == "CoinDesk"
    assert first.image_url == "https://www.coindesk.com/a.png"
    assert first.coins == ["BTC", "SOL"]
    assert first.published_at == "2024-03-01T12:00:00Z"
    assert first.excerpt == "Solana follows"

    second = items[1]
    assert second.id == hashlib.sha1(b"No url here").hexdigest()[:24]
    assert second.image_url is None
    assert second.published_at is None


@pytest.mark.asyncio
async def test_newsapi_provider_without_key_skips_request():
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    provider = NewsApiProvider(api_key="", transport=httpx.MockTransport(handler))

    assert await provider.fetch() == []


@pytest.mark.asyncio
async def test_newsapi_provider_raises_on_http_error():
    provider = NewsApiProvider(
        api_key="k",
        transport=httpx.MockTransport(lambda request: httpx.Response(429, text="rate limited")),
    )

    with pytest.raises(NewsProviderError, match="429"):
        await provider.fetch()


@pytest.mark.asyncio
async def test_newsapi_provider_raises_on_error_status_body():
    provider = NewsApiProvider(
        api_key="k",
        transport=httpx.MockTransport(
            lambda request: httpx.Response(200, json={"status": "error", "message": "bad query"})
        ),
    )

    with pytest.raises(NewsProviderError, match="bad query"):
        await provider.fetch()


@pytest.mark.asyncio
async def test_aggregator_skips_failing_provider():
    aggregator = NewsAggregator(
        providers=[
            StaticProvider("broken", error=NewsProviderError("down")),
            StaticProvider(
                "ok",
                items=[
                    _item("old", url="https://a.com/old", published_at="2024-01-01T00:00:00Z"),
                    _item("new", url="https://a.com/new", published_at="2024-02-01T00:00:00Z"),
                    _item("dup", url="https://a.com/old", published_at="2024-03-01T00:00:00Z"),
                ],
            ),
        ]
    )

    items = await aggregator.collect()

    assert [i.title for i in items] == ["new", "old"]


@pytest.mark.asyncio
async def test_run_once_writes_snapshot(settings):
    from src.tradelog.tasks.ingest_news import run_once

    aggregator = NewsAggregator(
        providers=[StaticProvider("ok", items=[_item("a", url="https://a.com/1")])]
    )

    snapshot = await run_once(aggregator, settings)

    on_disk = json.loads(settings.news_path.read_text(encoding="utf-8"))
    assert on_disk["count"] == 1 == snapshot.count
    assert on_disk["items"][0]["url"] == "https://a.com/1"
    assert on_disk["generated_at"] == snapshot.generated_at


@pytest.mark.asyncio
async def test_run_once_with_all_providers_failing_writes_empty_snapshot(settings):
    from src.tradelog.tasks.ingest_news import run_once

    aggregator = NewsAggregator(providers=[StaticProvider("broken", error=RuntimeError("boom"))])

    await run_once(aggregator, settings)

    on_disk = json.loads(settings.news_path.read_text(encoding="utf-8"))
    assert on_disk["count"] == 0
    assert on_disk["items"] == []
    assert on_disk["generated_at"]


@pytest.mark.asyncio
async def test_ingest_cycle_logs_write_failure(settings, monkeypatch):
    from src.tradelog.tasks import ingest_news

    def fail(path, document):
        raise OSError("disk full")

    monkeypatch.setattr(ingest_news, "write_json_atomic", fail)
    aggregator = NewsAggregator(providers=[StaticProvider("ok", items=[_item("a")])])

    await ingest_news.ingest_cycle(aggregator, settings)

    assert not settings.news_path.exists()


def test_scheduler_registers_interval_job(settings):
    from src.tradelog.tasks.ingest_news import get_scheduler

    scheduler = get_scheduler(NewsAggregator(providers=[]), settings, interval_minutes=5)
    job = scheduler.get_job("ingest_news")

    assert job is not None
    assert job.trigger.interval.total_seconds() == 300
    assert job.max_instances == 1


@pytest.mark.parametrize("minutes", [0, -1])
def test_scheduler_rejects_non_positive_interval(settings, minutes):
    from src.tradelog.tasks.ingest_news import get_scheduler

    with pytest.raises(ValueError, match="must be positive"):
        get_scheduler(NewsAggregator(providers=[]), settings, interval_minutes=minutes)


def test_scheduler_uses_configured_interval_by_default(settings):
    from src.tradelog.tasks.ingest_news import get_scheduler

    config = settings.model_copy(update={"WORKER_INTERVAL_MIN": 2.5})
    scheduler = get_scheduler(NewsAggregator(providers=[]), config)

    assert scheduler.get_job("ingest_news").trigger.interval.total_seconds() == 150


class CountingProvider:
    name = "flaky"

    def __init__(self):
        self.calls = 0

    async def fetch(self) -> list[NewsItem]:
        self.calls += 1
        raise NewsProviderError("upstream down")


@pytest.mark.asyncio
async def test_watch_keeps_running_cycles_after_failures(settings, monkeypatch):
    from src.tradelog.tasks import ingest_news

    writes = []
    real_write = ingest_news.write_json_atomic

    def flaky_write(path, document):
        writes.append(path)
        if len(writes) == 1:
            raise OSError("disk full")
        return real_write(path, document)

    monkeypatch.setattr(ingest_news, "write_json_atomic", flaky_write)
    provider = CountingProvider()
    aggregator = NewsAggregator(providers=[provider])

    task = asyncio.create_task(ingest_news.watch(aggregator, settings, interval_minutes=0.001))
    await asyncio.sleep(0.5)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert provider.calls >= 2
    assert len(writes) >= 2
    on_disk = json.loads(settings.news_path.read_text(encoding="utf-8"))
    assert on_disk["count"] == 0


def test_main_returns_1_when_write_fails(settings, monkeypatch):
    from src.tradelog.tasks import ingest_news

    def fail(path, document):
        raise OSError("disk full")

    monkeypatch.setattr(ingest_news, "settings", settings)
    monkeypatch.setattr(ingest_news, "write_json_atomic", fail)
    monkeypatch.setattr(ingest_news, "create_aggregator", lambda config: NewsAggregator(providers=[]))

    assert ingest_news.main([]) == 1
    assert not settings.news_path.exists()


def test_main_runs_once_and_writes_snapshot(settings, monkeypatch):
    from src.tradelog.tasks import ingest_news

    monkeypatch.setattr(ingest_news, "settings", settings)
    monkeypatch.setattr(
        ingest_news,
        "create_aggregator",
        lambda config: NewsAggregator(providers=[StaticProvider("ok", items=[_item("a")])]),
    )

    assert ingest_news.main([]) == 0
    assert json.loads(settings.news_path.read_text(encoding="utf-8"))["count"] == 1


@pytest.mark.parametrize("value", ["0", "-5", "soon"])
def test_main_rejects_bad_interval(value):
    from src.tradelog.tasks import ingest_news

    with pytest.raises(SystemExit) as excinfo:
        ingest_news.main(["--watch", "--interval", value])

    assert excinfo.value.code == 2


def test_settings_reject_non_positive_worker_interval(tmp_path):
    from pydantic import ValidationError

    from src.tradelog.config import Settings

    with pytest.raises(ValidationError, match="WORKER_INTERVAL_MIN"):
        Settings(_env_file=None, DATA_DIR=str(tmp_path), WORKER_INTERVAL_MIN=0)
