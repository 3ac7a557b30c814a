from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from api.artifacts import router as artifacts_router
from api.layers import router as layers_router
from engine.errors import BackendError, BackendTimeoutError
from engine.types import ArtifactBackend


def create_app(backend: ArtifactBackend | None = None) -> FastAPI:
    """
    Build the API app. Without an explicit backend one is created on the first
    request via `engine.factory.create_backend` (env-driven).
    """
    app = FastAPI(title="Artifact map backend")
    app.state.backend = backend

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(BackendError)
    async def _backend_error(request: Request, exc: BackendError):
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
        return JSONResponse(status_code=503, content={"detail": str(exc)})

    @app.exception_handler(BackendTimeoutError)
    async def _backend_timeout(request: Request, exc: BackendTimeoutError):
        logger.warning(f"{request.method} {request.url.path} timed out: {exc}")
        return JSONResponse(status_code=504, content={"detail": str(exc)})

    @app.get("/health")
    def health():
        b = app.state.backend
        return {"ok": True, "backend": b.name if b is not None else None}

    app.include_router(artifacts_router)
    app.include_router(layers_router)
    return app


app = create_app()
