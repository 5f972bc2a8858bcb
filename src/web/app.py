"""
FastAPI application factory for transfer-cam.

Routes:
- /api/status -> pipeline status for polling UIs
- /api/camera/enable, /api/capture/*, /api/train -> UI triggers
"""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from runtime.context import RuntimeContext
from .routes import api


def create_app(ctx: RuntimeContext) -> FastAPI:
    """Create the FastAPI app bound to one runtime context."""
    app = FastAPI(
        title="Transfer Cam",
        version="0.1.0",
        description="On-device transfer learning for live camera classification",
    )
    app.state.ctx = ctx

    # CORS for development (Vite dev server)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173", "http://127.0.0.1:5173"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api.router, prefix="/api")

    return app
