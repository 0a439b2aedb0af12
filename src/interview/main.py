"""
Main FastAPI Application Entry Point

The storage backend is chosen once, when the controllers module creates the
process-wide store, and closed again on shutdown.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import uvicorn
import logging
from . import config, controllers
from .controllers import router

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting API server (store backend: {controllers.store.backend_name})...")
    try:
        yield
    finally:
        await controllers.store.close()
        logger.info("API server shutting down...")


app = FastAPI(title=config.API_TITLE, docs_url="/api/docs", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)

@app.get("/")
async def root():
    return {"message": "Interview Evals API", "docs": "/api/docs"}

@app.get("/health")
async def health():
    return {"status": "ok", "store": controllers.store.backend_name}

if __name__ == "__main__":
    uvicorn.run("src.interview.main:app", host=config.API_HOST, port=config.API_PORT, reload=config.API_DEBUG)
