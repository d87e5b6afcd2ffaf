from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from .config import settings
from .database import engine, Base
from .errors import FieldSignError
from .routers import documents, signing, templates
import logging

# Configure logging
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)


from contextlib import asynccontextmanager

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create database tables on startup"""
    if settings.create_tables:
        logger.info("Creating database tables...")
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables created successfully!")
    yield

app = FastAPI(title="fieldsign", lifespan=lifespan)


@app.exception_handler(FieldSignError)
async def field_sign_error_handler(request: Request, exc: FieldSignError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Mount API routers
app.include_router(templates.router, tags=["templates"])
app.include_router(documents.router, tags=["documents"])
app.include_router(signing.router, prefix="/signing", tags=["signing"])

@app.get("/health")
def health_check():
    """Health check endpoint for debugging"""
    return {
        "status": "ok",
        "database": "sqlite" if settings.is_sqlite else "postgres",
        "environment": settings.environment,
    }
