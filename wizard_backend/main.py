import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from wizard_backend.config import CORS_ALLOW_HEADERS, LOG_LEVEL
from wizard_backend.database import init_db
from wizard_backend.dispatcher import get_dispatcher
from wizard_backend.errors import USER_FRIENDLY_MESSAGES, ErrorCode
from wizard_backend.routers.generation import router as generation_router

# --------------------------------------------------------------------------
# --- Configuration & Setup ---
# --------------------------------------------------------------------------

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s - %(levelname)s - %(message)s")


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    dispatcher = get_dispatcher()
    # Jobs from a previous process have no task left to finish them.
    dispatcher.store.fail_stale_jobs(USER_FRIENDLY_MESSAGES[ErrorCode.INTERNAL_ERROR])
    logging.info("🚀 Video Wizard backend started")

    yield

    await dispatcher.shutdown()
    logging.info("Video Wizard backend stopped")


app = FastAPI(
    title="Video Wizard Generation Backend",
    description="Submits video generation jobs and reports their progress.",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=CORS_ALLOW_HEADERS,
    expose_headers=["Retry-After"],
)

app.include_router(generation_router)


@app.get("/")
def read_root():
    return {"status": "🚀 Video Wizard backend is running!"}
