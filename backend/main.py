import uuid

from fastapi import FastAPI, Request
import uvicorn
from fastapi.middleware.cors import CORSMiddleware
from db.database import create_db_and_tables
from routers.stock import get_reconciler, router as stock_router
from core.logging import add_context, clear_context, configure_logging
from contextlib import asynccontextmanager


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    await create_db_and_tables()
    yield
    await get_reconciler().drain_notifications()


app = FastAPI(
    title="Store Stock API",
    description="Stock ledger and reconciliation for the store back office",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_log_context(request: Request, call_next):
    """Tag every log line emitted while serving a request with its request id."""
    request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
    clear_context()
    add_context(request_id=request_id, path=request.url.path)
    try:
        response = await call_next(request)
    finally:
        clear_context()
    response.headers["X-Request-ID"] = request_id
    return response


@app.get("/health", tags=["health"])
async def health():
    return {"status": "ok"}


# Stock ledger routes
app.include_router(stock_router, prefix="/stock", tags=["stock"])

if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
