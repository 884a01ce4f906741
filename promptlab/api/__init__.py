"""HTTP API: job routes, SSE streaming and application wiring."""
