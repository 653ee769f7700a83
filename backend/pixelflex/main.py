"""FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from pixelflex import __version__
from pixelflex.api.routes import router
from pixelflex.batch import drop_all_queues
from pixelflex.config import CORS_ORIGINS, logger as config_logger
from pixelflex.resources import get_registry

logging.getLogger("uvicorn").setLevel(logging.INFO)


@asynccontextmanager
async def lifespan(app: FastAPI):
    config_logger.info("PixelFlex started")
    yield
    drop_all_queues()
    get_registry().release_all()
    config_logger.info("PixelFlex shutting down")


app = FastAPI(
    title="PixelFlex Image Converter",
    description="Batch-convert images between PNG, JPEG, WebP, SVG, GIF and BMP with optional AI enhancement.",
    version=__version__,
    lifespan=lifespan,
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS if CORS_ORIGINS else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Session-ID", "Content-Disposition"],
)


async def session_header_middleware(request, call_next):
    """Set X-Session-ID on response when the session was created by the dependency."""
    response = await call_next(request)
    if hasattr(request.state, "session_id"):
        response.headers["X-Session-ID"] = request.state.session_id
    return response


app.middleware("http")(session_header_middleware)
app.include_router(router)


def run():
    import uvicorn
    from pixelflex.config import HOST, PORT
    uvicorn.run("pixelflex.main:app", host=HOST, port=PORT)


if __name__ == "__main__":
    run()
