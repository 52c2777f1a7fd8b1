"""Runtime configuration for the itinerary finder.

Values come from the environment (``backend/.env`` is loaded by ``main.py``
through python-dotenv before this module is imported).
"""

import os


def _env_float(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


class Settings:
    """Planner tunables and upstream endpoints."""

    # Upstream services
    NEXTBUS_BASE_URL: str = os.getenv("NEXTBUS_BASE_URL", "http://localhost:8000/api/bus")
    NEXTBUS_USERNAME: str = os.getenv("NEXTBUS_USERNAME", "")
    NEXTBUS_PASSWORD: str = os.getenv("NEXTBUS_PASSWORD", "")
    GOOGLE_ROUTES_URL: str = os.getenv(
        "GOOGLE_ROUTES_URL", "https://routes.googleapis.com/directions/v2:computeRoutes"
    )
    GOOGLE_MAPS_API_KEY: str = os.getenv("GOOGLE_MAPS_API_KEY", "")

    # Timeouts (seconds)
    UPSTREAM_TIMEOUT_SECONDS: float = _env_float("UPSTREAM_TIMEOUT_SECONDS", 5.0)
    DIRECTIONS_TIMEOUT_SECONDS: float = _env_float("DIRECTIONS_TIMEOUT_SECONDS", 8.0)
    CANDIDATE_TIMEOUT_SECONDS: float = _env_float("CANDIDATE_TIMEOUT_SECONDS", 12.0)

    # Timing model
    WALKING_SPEED_MPS: float = _env_float("WALKING_SPEED_MPS", 1.4)
    PER_STOP_SECONDS: int = _env_int("PER_STOP_SECONDS", 120)
    CATCH_BUFFER_SECONDS: int = _env_int("CATCH_BUFFER_SECONDS", 120)
    RECOMMEND_TOLERANCE_SECONDS: int = _env_int("RECOMMEND_TOLERANCE_SECONDS", 300)

    # Fan-out width
    ORIGIN_RADIUS_METERS: float = _env_float("ORIGIN_RADIUS_METERS", 800.0)
    DESTINATION_RADIUS_METERS: float = _env_float("DESTINATION_RADIUS_METERS", 500.0)
    MAX_STOPS_PER_SIDE: int = _env_int("MAX_STOPS_PER_SIDE", 3)
    MAX_ARRIVALS_PER_STOP: int = _env_int("MAX_ARRIVALS_PER_STOP", 2)
    SHUTTLE_ROUTES: tuple[str, ...] = tuple(
        code.strip()
        for code in os.getenv("SHUTTLE_ROUTES", "A1,A2,D1,D2,BTC").split(",")
        if code.strip()
    )

    # Caching
    STOP_CATALOG_TTL_SECONDS: float = _env_float("STOP_CATALOG_TTL_SECONDS", 600.0)
    COORDINATE_PRECISION: int = _env_int("COORDINATE_PRECISION", 6)

    @classmethod
    def get_config_dict(cls) -> dict:
        return {
            "NEXTBUS_BASE_URL": cls.NEXTBUS_BASE_URL,
            "DIRECTIONS_CONFIGURED": bool(cls.GOOGLE_MAPS_API_KEY),
            "SHUTTLE_ROUTES": list(cls.SHUTTLE_ROUTES),
            "CATCH_BUFFER_SECONDS": cls.CATCH_BUFFER_SECONDS,
            "RECOMMEND_TOLERANCE_SECONDS": cls.RECOMMEND_TOLERANCE_SECONDS,
            "ORIGIN_RADIUS_METERS": cls.ORIGIN_RADIUS_METERS,
            "DESTINATION_RADIUS_METERS": cls.DESTINATION_RADIUS_METERS,
            "MAX_STOPS_PER_SIDE": cls.MAX_STOPS_PER_SIDE,
            "CANDIDATE_TIMEOUT_SECONDS": cls.CANDIDATE_TIMEOUT_SECONDS,
        }
