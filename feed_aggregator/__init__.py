"""feed_aggregator: RSS/Atom feed aggregator with an MCP interface."""

__version__ = "0.1.0"
