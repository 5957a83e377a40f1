# modtune/main.py
"""
Modtune – FastAPI entry point
=============================

Run options
-----------
• Local API for the launcher UI:   python -m modtune.main
• Custom bind address:             MODTUNE_HOST=0.0.0.0 MODTUNE_PORT=5051 python -m modtune.main
"""

from __future__ import annotations

import importlib
import os

import uvicorn
from fastapi import FastAPI

from modtune.core import config

app = FastAPI(
    title=config.APP_NAME,
    version=config.APP_VERSION,
    docs_url=None,
    redoc_url=None,
)


@app.get("/api/health")
async def health():
    return {
        "app": config.APP_ID,
        "version": config.APP_VERSION,
        "portable": config.is_portable_mode(),
    }


# ────────────────────────────── API routers
presets  = importlib.import_module("modtune.api.presets")
settings = importlib.import_module("modtune.api.settings")

app.include_router(presets.router,  prefix="/api")
app.include_router(settings.router, prefix="/api")


# ────────────────────────────── server helper
def run(host: str = "127.0.0.1", port: int = 5050) -> None:
    uvicorn.run(app, host=host, port=port, log_level="error")


if __name__ == "__main__":  # pragma: no cover
    run(
        host=os.getenv("MODTUNE_HOST", "127.0.0.1"),
        port=int(os.getenv("MODTUNE_PORT", "5050")),
    )
