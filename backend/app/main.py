import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from routes.jobs import router as jobs_router
from services.platform import close_platform
from services.store import cancel_watchers

# Load .env from backend dir (where the app runs)
load_dotenv(os.path.join(os.path.dirname(os.path.dirname(__file__)), ".env"))
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    logger.info("Shutting down: stopping status watchers")
    cancel_watchers()
    close_platform()


app = FastAPI(title="Music Video Generator API", version="0.1.0", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(jobs_router, prefix="/api")


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


def run() -> None:
    """Serve the API with uvicorn; host and port come from API_HOST / API_PORT."""
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=os.environ.get("API_HOST", "").strip() or "127.0.0.1",
        port=int(os.environ.get("API_PORT", "").strip() or 8000),
    )


if __name__ == "__main__":
    run()
