"""HTTP API layer: FastAPI router, request/response schemas and middleware."""
