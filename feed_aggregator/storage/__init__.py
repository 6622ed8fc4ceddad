"""Storage layer for feed_aggregator."""

from .database import (
    get_database,
    init_database,
    close_database,
    add_feed_source,
    update_feed_source,
    remove_feed_source,
    get_feed_source_by_name,
    get_feed_sources,
    list_feed_sources,
    get_existing_links,
    get_tombstoned_links,
    save_new_articles,
    get_article,
    list_articles,
    count_articles,
    mark_article_read,
    mark_article_unread,
    toggle_article_read,
    mark_all_read,
    delete_article,
    clean_read_articles,
    clean_old_articles,
    clean_all_articles,
)

__all__ = [
    "get_database",
    "init_database",
    "close_database",
    "add_feed_source",
    "update_feed_source",
    "remove_feed_source",
    "get_feed_source_by_name",
    "get_feed_sources",
    "list_feed_sources",
    "get_existing_links",
    "get_tombstoned_links",
    "save_new_articles",
    "get_article",
    "list_articles",
    "count_articles",
    "mark_article_read",
    "mark_article_unread",
    "toggle_article_read",
    "mark_all_read",
    "delete_article",
    "clean_read_articles",
    "clean_old_articles",
    "clean_all_articles",
]
