import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import settings
from database import AsyncSessionLocal, init_db
from exceptions import WorkflowError
from api.applications import router as applications_router
from api.comments import router as comments_router
from api.reviews import router as reviews_router
from api.sections import router as sections_router
from services.autosave import AutoSaveCoordinator, store_persister

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    app.state.autosave = AutoSaveCoordinator(
        store_persister(AsyncSessionLocal),
        debounce_seconds=settings.autosave_debounce_seconds,
        max_retries=settings.autosave_max_retries,
        backoff_seconds=settings.autosave_backoff_seconds,
        max_idle_sections=settings.autosave_max_idle_sections,
    )
    yield
    await app.state.autosave.aclose()


app = FastAPI(
    title=settings.app_name,
    description="Capital-market filing workflow API: sections, auto-save, submission and regulator review",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["ETag"],
)


@app.exception_handler(WorkflowError)
async def workflow_error_handler(request: Request, exc: WorkflowError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


app.include_router(applications_router)
app.include_router(sections_router)
app.include_router(reviews_router)
app.include_router(comments_router)


@app.get("/health")
async def health():
    return {"status": "ok"}
