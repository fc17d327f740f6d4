import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv

# Settings are read at import time, so the .env file has to be loaded first.
env_path = os.path.join(os.path.dirname(os.path.abspath(__file__)), ".env")
load_dotenv(dotenv_path=env_path)

from fastapi import FastAPI, Request  # noqa: E402
from fastapi.middleware.cors import CORSMiddleware  # noqa: E402
from fastapi.responses import JSONResponse  # noqa: E402

from school_module import init_school_module, router as school_router  # noqa: E402
from school_module.config import settings  # noqa: E402
from school_module.errors import ServiceError  # noqa: E402

# Configure Logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    handlers=[logging.StreamHandler()],
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Initializing school module...")
    init_school_module()
    logger.info("School module initialized.")
    yield
    logger.info("Shutting down...")


app = FastAPI(title="Class Bridge School Management API", lifespan=lifespan)

origins = [origin for origin in (settings.cors_origin_local, settings.cors_origin_prod) if origin]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "code": exc.code, "message": exc.message},
    )


@app.get("/health")
def health():
    return {"status": "ok"}


app.include_router(school_router)


if __name__ == "__main__":
    import uvicorn

    reload_enabled = os.getenv("BACKEND_RELOAD", "false").lower() == "true"
    backend_host = os.getenv("BACKEND_HOST", "127.0.0.1")
    backend_port = int(os.getenv("BACKEND_PORT", "8000"))
    uvicorn.run(app, host=backend_host, port=backend_port, reload=reload_enabled)
