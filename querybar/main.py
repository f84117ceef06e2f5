import logging

from fastapi import Depends, FastAPI, Request
from fastapi.responses import HTMLResponse, JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session

from querybar.core.config import settings
from querybar.core.logging_config import setup_logging
from querybar.db.session import engine, get_db
from querybar.services.debug_bar import DebugBarMiddleware

setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="Query Bar Demo")

app.add_middleware(
    DebugBarMiddleware,
    engine=engine,
    library_paths=tuple(settings.LIBRARY_PATHS),
    enabled=settings.DEBUG_BAR_ENABLED,
)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={
            "detail": "Internal server error",
            "type": type(exc).__name__,
        },
    )


@app.get("/health")
def health(db: Session = Depends(get_db)):
    db.execute(text("SELECT 1"))
    return {"status": "ok"}


@app.get("/", response_class=HTMLResponse)
def root(db: Session = Depends(get_db)):
    now = db.execute(text("SELECT CURRENT_TIMESTAMP")).scalar_one()
    rows = db.execute(text("SELECT 1 AS a UNION ALL SELECT 2")).scalars().all()
    return (
        "<!DOCTYPE html><html><head><title>Query Bar</title></head><body>"
        f"<h1>Query Bar demo</h1><p>Database time: {now}</p><p>Rows: {rows}</p>"
        "</body></html>"
    )
