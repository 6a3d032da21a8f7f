from __future__ import annotations

import logging
import os

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from loft_core import ImageStore

from .routers import api_router

logging.basicConfig(
    level=os.getenv("LOFTBOOK_LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)

app = FastAPI(title="Loftbook API", version="1.0.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in os.getenv("LOFTBOOK_CORS_ORIGINS", "*").split(",") if origin.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router)

# Images written locally while Supabase Storage is not configured.
app.mount("/uploads", StaticFiles(directory=ImageStore().upload_dir, check_dir=False), name="uploads")


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


def run() -> None:
    uvicorn.run(
        "app.main:app",
        host=os.getenv("LOFTBOOK_HOST", "127.0.0.1"),
        port=int(os.getenv("LOFTBOOK_PORT", "8000")),
        reload=os.getenv("LOFTBOOK_RELOAD", "").lower() in {"1", "true", "yes"},
    )


if __name__ == "__main__":
    run()
