"""Data models for feed_aggregator."""
