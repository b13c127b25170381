"""Notes catalog REST API package.

Sub-modules expose FastAPI routers:
- search: v1 hybrid search
- admin: embedding freshness and data maintenance backfills
"""
