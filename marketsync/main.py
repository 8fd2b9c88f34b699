import logging

from fastapi import FastAPI

from marketsync.api.endpoints import health, sync
from marketsync.settings import settings

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

app = FastAPI(title="marketsync")

app.include_router(sync.router, prefix="/api/sync", tags=["Sync"])
app.include_router(health.router, prefix="/api/health", tags=["Health"])


@app.get("/health")
def health_check():
    return {"status": "ok"}
