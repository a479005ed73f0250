import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import settings
from db import create_db_and_tables
from identity import get_identity_provider, log_session_change
from routers import admin, auth, donate, items, pages, profile, requests
from routers.common import render

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    create_db_and_tables()
    stop_session_log = get_identity_provider().on_session_change(log_session_change)
    logger.info("%s started", settings.PROJECT_NAME)
    yield
    stop_session_log()


app = FastAPI(title=settings.PROJECT_NAME, lifespan=lifespan)

app.mount("/static", StaticFiles(directory="static"), name="static")


@app.exception_handler(StarletteHTTPException)
async def http_error_page(request: Request, exc: StarletteHTTPException):
    """
    Browsers get the error page; API clients keep FastAPI's JSON body.
    """
    if "text/html" not in request.headers.get("accept", ""):
        return await http_exception_handler(request, exc)
    return render(request, "error.html", status_code=exc.status_code,
                  error_title=str(exc.status_code), error_detail=exc.detail)


app.include_router(auth.router)
app.include_router(pages.router)
app.include_router(items.router)
app.include_router(donate.router)
app.include_router(requests.router)
app.include_router(admin.router)
app.include_router(profile.router)
