"""FastAPI main application"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api import decision_groups, links
from config import settings
from storage.item_store import StoreError, get_item_store, init_item_store
from storage.token_store import get_token_store, init_token_store

CURRENT_VERSION = "0.3.0"

logging.basicConfig(level=settings.log_level.upper())
logger = logging.getLogger(__name__)


def init_stores():
    """Initialize stores from settings unless tests already installed some"""
    try:
        get_item_store()
    except RuntimeError:
        init_item_store()
    try:
        get_token_store()
    except RuntimeError:
        init_token_store()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifecycle manager for the application"""
    print(f"🚀 Decisions API starting on {settings.api_host}:{settings.api_port}")
    print(f"📁 Data directory: {settings.data_dir}")
    print(f"🗄️ Item store: {settings.item_store}")

    init_stores()
    print(f"✅ Decisions API v{CURRENT_VERSION} ready!")

    yield

    print("👋 Decisions API shutting down")

app = FastAPI(
    title="Decisions API",
    description="Groups saved links that are being compared and resolves the winner",
    version=CURRENT_VERSION,
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Report malformed bodies as 400 with the offending field"""
    errors = exc.errors()
    if errors and errors[0].get("type") == "json_invalid":
        detail = "Invalid JSON body."
    elif errors:
        loc = [str(part) for part in errors[0].get("loc", ()) if part != "body"]
        field = loc[-1] if loc else "body"
        detail = f"{field} is required." if errors[0].get("type") == "missing" else f"{field} is invalid."
    else:
        detail = "Invalid request."
    return JSONResponse(status_code=400, content={"detail": detail})


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    """Repository failures surface as 500; nothing is rolled back"""
    logger.error(f"Store failure on {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"detail": "Storage error. Safe to retry."})


# Include routers
app.include_router(decision_groups.router)
app.include_router(links.router, prefix="/links", tags=["links"])


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "Decisions API",
        "version": CURRENT_VERSION,
        "docs": "/docs"
    }


@app.get("/health")
async def health():
    """Health check endpoint"""
    return {"status": "healthy"}

if __name__ == "__main__":
    import uvicorn
    config = uvicorn.Config(
        app,
        host=settings.api_host,
        port=settings.api_port,
        log_level="warning"
    )
    server = uvicorn.Server(config)
    server.run()
