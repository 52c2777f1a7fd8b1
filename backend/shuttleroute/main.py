import logging
from contextlib import asynccontextmanager

import httpx
from dotenv import load_dotenv

load_dotenv()  # Load .env before any other imports that read env vars

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from shuttleroute.config import Settings  # noqa: E402

logger = logging.getLogger("shuttleroute")
logging.basicConfig(level=logging.INFO)

# Global state populated during startup
app_state: dict = {}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the shared HTTP client, walking cache and planner."""
    from shuttleroute.planner import ItineraryPlanner
    from shuttleroute.walking import WalkingSegmentCache

    if not Settings.GOOGLE_MAPS_API_KEY:
        logger.warning(
            "GOOGLE_MAPS_API_KEY is missing in backend/.env; "
            "walking legs will use the straight-line heuristic."
        )

    # Shared httpx client for connection pooling across all upstream calls
    http_client = httpx.AsyncClient(
        timeout=Settings.UPSTREAM_TIMEOUT_SECONDS,
        limits=httpx.Limits(max_connections=50, max_keepalive_connections=20),
    )
    app_state["http_client"] = http_client

    walking_cache = WalkingSegmentCache(Settings.COORDINATE_PRECISION)
    app_state["walking_cache"] = walking_cache
    app_state["planner"] = ItineraryPlanner.create(http_client, walking_cache)
    logger.info(f"Planner ready: routes={', '.join(Settings.SHUTTLE_ROUTES)}")

    yield

    logger.info("Shutting down...")
    await http_client.aclose()
    logger.info("Shared HTTP client closed")


app = FastAPI(title="ShuttleRoute API", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:8081", "http://127.0.0.1:8081"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

from shuttleroute.routes import router  # noqa: E402

app.include_router(router, prefix="/api")
