from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from sqlalchemy.exc import SQLAlchemyError

from database import engine
from models import Base
from routers import files as files_router, folders as folders_router, progress as progress_router, uploads as uploads_router
from blob_store import get_blob_store
from events import event_sink
from exceptions import HierarchyError
from logging_config import get_logger
from config import settings

logger = get_logger(__name__)

async def create_db_and_tables():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created or already exist.")

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Document Store Service starting up...")
    await create_db_and_tables()
    get_blob_store().ensure_ready()
    logger.info(f"Blob storage path configured at: {settings.STORAGE_BASE_PATH}")
    if settings.EVENT_WEBHOOK_URL:
        logger.info(f"Forwarding events to: {settings.EVENT_WEBHOOK_URL}")
    yield
    await event_sink.aclose()
    logger.info("Document Store Service shutting down...")

app = FastAPI(
    title="Document Store Service",
    version="0.1.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.exception_handler(HierarchyError)
async def hierarchy_error_handler(request: Request, exc: HierarchyError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "kind": exc.kind})

@app.exception_handler(SQLAlchemyError)
async def storage_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception(f"Unhandled entity store error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"detail": "Entity store failure", "kind": "StorageFailure"})

app.include_router(folders_router.router)
app.include_router(files_router.router)
app.include_router(progress_router.router)
app.include_router(uploads_router.router)

@app.get("/ping", tags=["Health"])
async def ping():
    logger.debug("Ping endpoint was called")
    return {"ping": "pong! from DSS"}

@app.get("/", tags=["Root"])
async def read_root():
    return {"message": "Welcome to the Document Store Service API"}

if __name__ == "__main__":
    import uvicorn
    logger.info(f"Starting DSS on {settings.DSS_HOST}:{settings.DSS_PORT}")
    uvicorn.run("main:app", host=settings.DSS_HOST, port=settings.DSS_PORT, reload=True)
