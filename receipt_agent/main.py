# receipt_agent/main.py
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from receipt_agent.api.endpoints import router, get_database_service
from receipt_agent.config import settings
import logging
from contextlib import asynccontextmanager

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle"""
    logging.info("Receipt agent starting...")

    yield

    logging.info("Receipt agent shutting down...")
    await get_database_service().close()


app = FastAPI(
    title="WhatsApp Receipt Agent",
    description="WhatsApp webhook that extracts receipts with a vision LLM",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router, prefix="/api")


@app.get("/")
async def root():
    return {
        "message": "WhatsApp receipt agent running",
        "version": "1.0.0",
        "docs": "/docs"
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "receipt_agent.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.debug,
        workers=1
    )
