from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

from .config import (
    CODE_RUNNER_LANGUAGE,
    CODE_RUNNER_TIMEOUT,
    CODE_RUNNER_URL,
    CORS_ORIGINS,
    LOCAL_CACHE_DIR,
    LOG_LEVEL,
)
from .db import create_db_and_tables, engine
from .routers import student_routers
from .services.code_runner_service import RemoteCodeExecutor
from .services.exam_service import SqlExamCatalog
from .services.progress_store import FileProgressCache, ProgressStoreAdapter, SqlProgressStore
from .services.session_service import SessionController, SessionSettings

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)


def build_controller(bind=engine) -> SessionController:
    adapter = ProgressStoreAdapter(FileProgressCache(LOCAL_CACHE_DIR), SqlProgressStore(bind))
    executor = RemoteCodeExecutor(CODE_RUNNER_URL, language=CODE_RUNNER_LANGUAGE, timeout=CODE_RUNNER_TIMEOUT)
    return SessionController(SqlExamCatalog(bind), adapter, executor, settings=SessionSettings())


@asynccontextmanager
async def lifespan(app: FastAPI):
    # run once when app starts. Make DB tables and the session controller unless one was injected.
    if getattr(app.state, "controller", None) is None:
        await create_db_and_tables()
        app.state.controller = build_controller()
    logger.info("Exam service ready, local cache at %s", LOCAL_CACHE_DIR)
    yield
    # stop timers and let queued remote pushes finish
    await app.state.controller.close()


app = FastAPI(lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,  # which sites can call this API
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(student_routers.router, prefix="/api", tags=["Student"])
