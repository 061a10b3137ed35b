from __future__ import annotations

import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.api.db import get_engine
from src.api.models import Base
from src.api.routes_import import router as import_router

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

openapi_tags = [
    {
        "name": "Health",
        "description": "Service health and diagnostics.",
    },
    {
        "name": "Import",
        "description": "Bulk import of test cases and retrieval of imported cases.",
    },
]

app = FastAPI(
    title="Test Case Import Backend",
    description=(
        "Backend API for bulk importing test cases (CSV/XLSX/XLS/JSON) with field mapping, "
        "duplicate detection and audit reports."
    ),
    version="0.3.0",
    openapi_tags=openapi_tags,
)

# BACKEND_CORS_ORIGINS: comma-separated list of allowed origins, e.g.
# "http://localhost:3000,https://your-preview-host".
_default_cors_origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://localhost:3001",
    "http://127.0.0.1:3001",
]
_env_origins = os.getenv("BACKEND_CORS_ORIGINS", "").strip()
allow_origins = (
    [o.strip() for o in _env_origins.split(",") if o.strip()] if _env_origins else _default_cors_origins
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def _startup_create_tables() -> None:
    """
    Create database tables if they do not exist.

    Uses DATABASE_URL, or the MYSQL_* environment variables. If neither is usable, startup fails.
    """
    engine = get_engine()
    Base.metadata.create_all(bind=engine)


@app.get("/", tags=["Health"], summary="Health check", operation_id="health_check")
def health_check():
    """Simple health check endpoint."""
    return {"message": "Healthy"}


app.include_router(import_router)
