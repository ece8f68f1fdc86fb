import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import get_settings
from .exceptions import ServiceError
from .routes import health, uploads
from .schemas import ErrorResponse

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    missing = settings.missing_credentials()
    if missing:
        logger.critical("Missing %s; upload requests will be refused", ", ".join(missing))
    yield


app = FastAPI(title="Employee Documents - Backend", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router, prefix="/api")
app.include_router(uploads.router, prefix="/api")


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s %s", request.method, request.url.path, exc.message,
                     exc.details, exc_info=exc.__cause__)
    else:
        logger.info("Rejected %s %s: %s %s", request.method, request.url.path, exc.message, exc.details)
    details = exc.details if exc.status_code < 500 else []
    body = ErrorResponse(error=exc.message, details=details)
    return JSONResponse(status_code=exc.status_code, content=body.model_dump())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    details = [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()]
    body = ErrorResponse(error="Invalid form submission", details=details)
    return JSONResponse(status_code=400, content=body.model_dump())


def run():
    import uvicorn
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
