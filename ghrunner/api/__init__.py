"""HTTP API layer (FastAPI).

Exposes the GitHub webhook endpoint plus a couple of status routes. The API is
intentionally thin: core behavior lives in `ghrunner/runtime` and `ghrunner/github`.
"""
