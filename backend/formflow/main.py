import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from formflow.config import settings
from formflow.errors import (
    ConfigurationError,
    DependencyCycleError,
    FormLockedError,
    NodeNotFoundError,
    RemoteSourceError,
)
from formflow.routers.forms import router as forms_router
from formflow.routers.sessions import router as sessions_router

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="FormFlow Backend (FastAPI)")

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(forms_router)
app.include_router(sessions_router)


def _error(status_code: int, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


@app.exception_handler(NodeNotFoundError)
async def not_found_handler(request: Request, exc: NodeNotFoundError):
    return _error(404, exc)


# also catches DependencyCycleError
@app.exception_handler(ConfigurationError)
async def configuration_handler(request: Request, exc: ConfigurationError):
    logger.info("Rejected configuration on %s: %s", request.url.path, exc)
    return _error(409 if isinstance(exc, DependencyCycleError) else 400, exc)


@app.exception_handler(FormLockedError)
async def locked_handler(request: Request, exc: FormLockedError):
    return _error(423, exc)


@app.exception_handler(RemoteSourceError)
async def remote_source_handler(request: Request, exc: RemoteSourceError):
    return _error(502, exc)


@app.exception_handler(IndexError)
async def index_handler(request: Request, exc: IndexError):
    return _error(404, exc)


@app.get("/health")
async def health():
    return {"status": "ok"}
