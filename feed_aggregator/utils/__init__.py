"""Utilities for feed_aggregator."""
