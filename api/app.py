"""
api/app.py — FastAPI application factory
==========================================
Creates and configures the FastAPI instance.  All configuration is
centralised here so that `main.py` stays minimal.

Each app owns its own `MeasurementSession` on ``app.state``, so tests
(or several apps in one process) never share buffered samples.

CORS
----
We allow all origins by default (suitable for local development and
demos).  In a production deployment restrict `allow_origins` to your
frontend domain.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.routes import router
from api.session import MeasurementSession
from config import API_TITLE, API_VERSION


def create_app(session: MeasurementSession | None = None) -> FastAPI:
    """
    Construct and return the configured FastAPI application.

    Parameters
    ----------
    session : MeasurementSession | None
        Inject a pre-built session (e.g. with a custom pipeline).
    """
    app = FastAPI(
        title=API_TITLE,
        version=API_VERSION,
        description=(
            "Pulse transit time estimation from two independently clocked "
            "PPG camera streams (face + fingertip). "
            "WELLNESS TOOL ONLY, not a medical device."
        ),
    )
    app.state.session = session or MeasurementSession()

    # ── CORS ────────────────────────────────────────────────────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],           # Restrict in production!
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Mount routes ────────────────────────────────────────────────────
    app.include_router(router)

    return app
