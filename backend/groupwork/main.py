"""Entry point for the groupwork live activity service."""

from __future__ import annotations

import logging
import random
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .activity import ActivityController
from .api import stream
from .config import Settings, settings
from .questions import load_questions
from .realtime import BroadcastHub
from .schemas import Question
from .store import SessionState

logger = logging.getLogger(__name__)


def create_app(
    app_settings: Optional[Settings] = None,
    questions: Optional[list[Question]] = None,
    rng: Optional[random.Random] = None,
) -> FastAPI:
    """Build the app around a fresh session.

    Questions are loaded before anything is wired up, so an unusable question
    file stops the process before it serves.
    """
    app_settings = app_settings or settings
    if questions is None:
        questions = load_questions(app_settings.questions_path)

    app = FastAPI(title=app_settings.project_name)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.activity = ActivityController(SessionState(questions=questions), BroadcastHub(), rng=rng)
    app.include_router(stream.router)

    @app.get("/healthz")
    def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    return app


def run() -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app = create_app(settings)
    logger.info("Loaded %d questions from %s", len(app.state.activity.state.questions), settings.questions_path)
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    run()
