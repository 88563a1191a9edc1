import logging
import os
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from fastapi.responses import FileResponse, JSONResponse
from fastapi.staticfiles import StaticFiles

from backend.routes import router
from backend import storage

load_dotenv(Path(__file__).parent.parent / ".env")

logger = logging.getLogger(__name__)

STATIC_DIR = Path(os.getenv("STATIC_DIR", str(Path(__file__).parent / "static")))
DEFAULT_DATA_DIR = Path(__file__).parent.parent / "data"


async def _error_body(request, exc: HTTPException) -> JSONResponse:
    # Clients expect {"error": ...} rather than FastAPI's {"detail": ...}
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


def create_app(data_dir: Path | None = None) -> FastAPI:
    resolved = data_dir or Path(os.getenv("DATA_DIR", str(DEFAULT_DATA_DIR)))
    storage.init_storage(resolved)
    logger.info("materials folder: %s", storage.materials_dir())

    app = FastAPI(title="Storyweave")
    app.add_exception_handler(HTTPException, _error_body)
    app.include_router(router, prefix="/api")
    app.mount("/materials", StaticFiles(directory=storage.materials_dir()), name="materials")

    if STATIC_DIR.exists():
        # Serve the player/editor front-end
        app.mount("/assets", StaticFiles(directory=STATIC_DIR / "assets", check_dir=False), name="assets")

        @app.get("/{path:path}")
        async def spa_fallback(path: str):
            return FileResponse(STATIC_DIR / "index.html")

    return app


# Default app instance for uvicorn (uses DATA_DIR env var or default)
app = create_app()
