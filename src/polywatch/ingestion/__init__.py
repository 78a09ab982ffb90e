"""Upstream data fetch: HTTP client, retry/backoff, route-fallback circuit, catalog."""
