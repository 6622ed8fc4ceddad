"""Logging system for feed_aggregator."""

from .unified_logger import UnifiedLogger

__all__ = ["UnifiedLogger"]
