"""Unit tests for the MCP feed tools."""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from feed_aggregator.models.schemas import Article
from feed_aggregator.services import scheduler
from feed_aggregator.storage import database
from feed_aggregator.tools.feed_tools import (
    add_feed,
    clean_all_articles,
    clean_old_articles,
    clean_read_articles,
    delete_article,
    edit_feed,
    feed_tools,
    list_articles,
    list_feeds,
    mark_all_read,
    mark_article_read,
    refresh_feeds,
    refresh_status,
    remove_feed,
    set_refresh_interval,
    toggle_article_read,
)


# Mark all tests as async
pytestmark = pytest.mark.anyio


RSS_FEED = b"""<?xml version="1.0"?>
<rss version="2.0" xmlns:media="http://search.yahoo.com/mrss/">
    <channel>
        <title>Test Blog</title>
        <item>
            <title>Post 1</title>
            <link>https://example.com/post1</link>
            <pubDate>Tue, 02 Jan 2024 12:00:00 GMT</pubDate>
            <description>&lt;p&gt;Hello &lt;b&gt;world&lt;/b&gt;&lt;/p&gt;</description>
            <media:thumbnail url="https://img.example.com/1.jpg"/>
        </item>
        <item>
            <title>Post 2</title>
            <link>https://example.com/post2</link>
            <pubDate>Mon, 01 Jan 2024 12:00:00 GMT</pubDate>
        </item>
    </channel>
</rss>
"""


def make_response(content: bytes) -> MagicMock:
    mock_response = MagicMock()
    mock_response.status_code = 200
    mock_response.content = content
    mock_response.raise_for_status = MagicMock()
    return mock_response


@pytest.fixture(autouse=True)
def http_client():
    """Patch the fetcher's AsyncClient to answer every request with RSS_FEED."""
    mock_instance = AsyncMock()
    mock_instance.get = AsyncMock(return_value=make_response(RSS_FEED))
    mock_instance.__aenter__ = AsyncMock(return_value=mock_instance)
    mock_instance.__aexit__ = AsyncMock(return_value=None)

    with patch("feed_aggregator.services.fetcher.httpx.AsyncClient") as client_class:
        client_class.return_value = mock_instance
        yield mock_instance


async def subscribe():
    return await add_feed(url="https://example.com/feed.xml", name="Example")


class TestFeedManagement:
    """Tests for subscription tools."""

    async def test_add_feed(self, in_memory_db):
        result = await subscribe()

        assert result["success"] is True
        assert result["feed"]["name"] == "Example"

    async def test_add_feed_fetches_right_away(self, in_memory_db, http_client):
        result = await subscribe()

        assert result["new_articles"] == 2
        assert result["fetch_error"] is None
        http_client.get.assert_awaited_once_with("https://example.com/feed.xml")
        assert (await list_articles())["count"] == 2

    async def test_add_feed_keeps_subscription_when_fetch_fails(self, in_memory_db, http_client):
        http_client.get.return_value = make_response(b"   ")

        result = await subscribe()

        assert result["success"] is True
        assert result["new_articles"] == 0
        assert result["fetch_error"] == "Empty response body"
        assert (await list_feeds())["count"] == 1

    async def test_add_feed_derives_name(self, in_memory_db):
        result = await add_feed(url="https://www.example.com/feed.xml")

        assert result["feed"]["name"] == "Example"

    async def test_add_feed_invalid_url(self, in_memory_db, http_client):
        result = await add_feed(url="ftp://example.com/feed")

        assert result["success"] is False
        assert "Invalid feed URL" in result["error"]
        http_client.get.assert_not_awaited()

    async def test_add_feed_duplicate(self, in_memory_db):
        await subscribe()
        result = await add_feed(url="https://example.com/feed.xml", name="Other")

        assert result["success"] is False
        assert "already exists" in result["error"]

    async def test_edit_feed(self, in_memory_db):
        await subscribe()

        result = await edit_feed("Example", new_name="Renamed")
        missing = await edit_feed("Nope", new_name="x")
        invalid = await edit_feed("Renamed", new_url="not a url")

        assert result["success"] is True
        assert result["feed"]["name"] == "Renamed"
        assert missing["success"] is False
        assert invalid["success"] is False

    async def test_list_and_remove_feed(self, in_memory_db):
        await subscribe()

        feeds = await list_feeds()
        assert feeds["count"] == 1
        assert feeds["feeds"][0]["domain"] == "example.com"
        assert feeds["feeds"][0]["unread_articles"] == 2

        removed = await remove_feed("Example")
        assert removed["success"] is True
        assert removed["articles_deleted"] == 2
        assert (await remove_feed("Example"))["success"] is False


class TestRefreshTools:
    """Tests for refresh_feeds, refresh_status and set_refresh_interval."""

    async def test_refresh_feeds_reports_new_articles(self, in_memory_db):
        await database.add_feed_source(name="Example", url="https://example.com/feed.xml")

        result = await refresh_feeds()

        assert result["success"] is True
        assert result["feeds_refreshed"] == 1
        assert result["total_new_articles"] == 2
        assert result["notifications"] == ["2 new articles from Example"]
        assert result["results"][0]["error"] is None

    async def test_refresh_after_subscribe_is_quiet(self, in_memory_db):
        await subscribe()

        result = await refresh_feeds()

        assert result["total_new_articles"] == 0
        assert result["notifications"] == []

    async def test_concurrent_refreshes_report_their_own_notifications(self, in_memory_db, http_client):
        await database.add_feed_source(name="Slow", url="https://slow.example.com/feed.xml")
        await database.add_feed_source(name="Fast", url="https://fast.example.com/feed.xml")

        async def fake_get(url):
            host = url.split("/")[2]
            if host.startswith("slow"):
                await asyncio.sleep(0.05)
            body = (
                f"<rss><channel><item><title>Post</title>"
                f"<link>https://{host}/post</link></item></channel></rss>"
            ).encode()
            return make_response(body)

        http_client.get = AsyncMock(side_effect=fake_get)

        everything, fast_only = await asyncio.gather(
            refresh_feeds(),
            refresh_feeds(feed_name="Fast"),
        )

        for result in (everything, fast_only):
            expected = [
                f"1 new article from {r['feed']}"
                for r in result["results"]
                if r["new_articles"]
            ]
            assert result["notifications"] == expected
            assert result["total_new_articles"] == len(expected)

        assert [r["feed"] for r in fast_only["results"]] == ["Fast"]
        assert everything["total_new_articles"] + fast_only["total_new_articles"] == 2

    async def test_refresh_unknown_feed(self, in_memory_db):
        result = await refresh_feeds(feed_name="Nope")

        assert result["success"] is False

    async def test_refresh_without_feeds(self, in_memory_db):
        result = await refresh_feeds()

        assert result["success"] is True
        assert result["feeds_refreshed"] == 0

    async def test_refresh_status_idle(self, in_memory_db):
        result = await refresh_status()

        assert result == {"success": True, "busy": False, "refresh_interval_minutes": None}

    async def test_set_refresh_interval_rejects_unoffered_value(self, in_memory_db):
        result = await set_refresh_interval(7)

        assert result["success"] is False
        assert "Invalid interval" in result["error"]

    async def test_set_refresh_interval_without_scheduler(self, in_memory_db):
        result = await set_refresh_interval(10)

        assert result["success"] is False
        assert "not running" in result["error"]

    async def test_set_refresh_interval(self, in_memory_db):
        async def job():
            pass

        scheduler.create_scheduler(job, 300)
        try:
            result = await set_refresh_interval(15)
            status = await refresh_status()
        finally:
            scheduler.shutdown_scheduler()

        assert result == {"success": True, "refresh_interval_minutes": 15}
        assert status["refresh_interval_minutes"] == 15


class TestArticleTools:
    """Tests for listing and managing articles."""

    async def test_list_articles_preview(self, in_memory_db):
        await subscribe()

        result = await list_articles()

        assert result["count"] == 2
        assert result["unread_count"] == 2
        first = result["articles"][0]
        assert first["title"] == "Post 1"
        assert first["pub_date"] == "Tue, 02 Jan 2024 12:00:00"
        assert first["preview"] == "Hello world"
        assert first["image_url"] == "https://img.example.com/1.jpg"
        assert first["source_domain"] == "example.com"

    async def test_list_articles_invalid_filter(self, in_memory_db):
        result = await list_articles(read_filter="starred")

        assert result["success"] is False

    async def test_read_state_tools(self, in_memory_db):
        await subscribe()
        article_id = (await list_articles())["articles"][0]["id"]

        assert (await mark_article_read(article_id))["article"]["is_read"] is True
        assert (await toggle_article_read(article_id))["article"]["is_read"] is False
        assert (await mark_article_read(9999))["success"] is False

        marked = await mark_all_read(feed_name="Example")
        assert marked["articles_marked_read"] == 2
        assert (await list_articles(read_filter="unread"))["count"] == 0

    async def test_mark_all_read_unknown_feed(self, in_memory_db):
        result = await mark_all_read(feed_name="Nope")

        assert result["success"] is False

    async def test_deleted_article_stays_deleted(self, in_memory_db):
        """Test that a deleted article does not return on the next refresh."""
        await subscribe()
        article_id = (await list_articles())["articles"][0]["id"]

        deleted = await delete_article(article_id)
        assert deleted["success"] is True

        result = await refresh_feeds()

        assert result["total_new_articles"] == 0
        assert [a["title"] for a in (await list_articles())["articles"]] == ["Post 2"]

    async def test_clean_read_articles(self, in_memory_db):
        await subscribe()
        article_id = (await list_articles())["articles"][1]["id"]
        await mark_article_read(article_id)

        result = await clean_read_articles()

        assert result["articles_deleted"] == 1
        assert (await list_articles())["count"] == 1

    async def test_clean_old_articles(self, in_memory_db):
        source = await database.add_feed_source(name="Example", url="https://example.com/feed.xml")
        recent = (datetime.now(timezone.utc) - timedelta(days=2)).strftime("%a, %d %b %Y %H:%M:%S")
        await database.save_new_articles(source, [
            Article(id=None, title="Recent", link="https://example.com/recent", pub_date=recent,
                    source_name="Example", source_url=source.url),
            Article(id=None, title="Old", link="https://example.com/old", pub_date="Mon, 01 Jan 2024 12:00:00",
                    source_name="Example", source_url=source.url),
        ])

        result = await clean_old_articles()

        assert result == {"success": True, "articles_deleted": 1}
        assert [a["title"] for a in (await list_articles())["articles"]] == ["Recent"]

    async def test_clean_old_articles_rejects_non_positive_days(self, in_memory_db):
        result = await clean_old_articles(days=0)

        assert result["success"] is False

    async def test_clean_all_articles_stays_clean_after_refresh(self, in_memory_db):
        await subscribe()

        result = await clean_all_articles()
        refreshed = await refresh_feeds()

        assert result["articles_deleted"] == 2
        assert refreshed["total_new_articles"] == 0
        assert (await list_articles())["count"] == 0


async def test_all_tools_registered():
    names = {tool.__name__ for tool in feed_tools}

    assert {
        "add_feed",
        "refresh_feeds",
        "refresh_status",
        "set_refresh_interval",
        "delete_article",
        "clean_old_articles",
        "clean_all_articles",
    } <= names
