# answerprep/main.py
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, Response
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates

from answerprep.config import settings
from answerprep.models.session_store import SessionStore
from answerprep.routers import practice, questions

logging.basicConfig(
    format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
    level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
)
logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent
templates = Jinja2Templates(directory=str(BASE_DIR / "templates"))


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("AnswerPrep starting up...")
    for problem in settings.validate():
        logger.warning("Config: %s", problem)
    yield
    logger.info("AnswerPrep shutting down...")
    # cancels countdowns and releases any open microphone capture
    await app.state.store.close_all()
    logger.info("AnswerPrep shutdown complete")


def create_app(store: SessionStore = None) -> FastAPI:
    app = FastAPI(
        title="AnswerPrep API",
        description="Timed spoken-answer practice with heuristic feedback",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True, allow_methods=["*"], allow_headers=["*"],
    )

    # One store per app; routers reach it through app.state
    app.state.store = store if store is not None else SessionStore()

    app.include_router(questions.router, prefix="/api/questions", tags=["questions"])
    app.include_router(practice.router, prefix="/api/practice", tags=["practice"])
    app.include_router(practice.ws_router)
    app.mount("/static", StaticFiles(directory=str(BASE_DIR / "static")), name="static")

    @app.get("/", response_class=HTMLResponse)
    async def index(request: Request):
        return templates.TemplateResponse(
            request,
            "index.html",
            {"answer_seconds": settings.ANSWER_SECONDS},
        )

    @app.get("/favicon.ico")
    async def favicon():
        return Response(content="", media_type="image/x-icon")

    @app.get("/api/health")
    async def health_check():
        return {
            "status": "healthy",
            "timestamp": datetime.now().isoformat(),
            "active_sessions": len(app.state.store),
        }

    @app.exception_handler(Exception)
    async def global_exception_handler(request, exc):
        logger.exception("Global exception: %s", exc)
        return JSONResponse(status_code=500, content={"message": "Internal server error", "detail": str(exc)})

    return app


app = create_app()


def run():
    uvicorn.run("answerprep.main:app", host=settings.HOST, port=settings.PORT, log_level=settings.LOG_LEVEL.lower())


if __name__ == "__main__":
    run()
