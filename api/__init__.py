"""Meeting Roster HTTP API (FastAPI routers, auth, SSE)."""
