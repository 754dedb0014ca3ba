import logging
import time
from datetime import datetime

import uvicorn
from fastapi import FastAPI, Depends, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import func, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

import models  # ensure models are imported so tables are registered
import auth_utils
from auth import router as auth_router
from books import router as books_router
from config import settings
from dashboard import router as dashboard_router
from database import Base, SessionLocal, engine, get_db
from exceptions import AuthError, LibraryError
from librarians import router as librarians_router
from members import router as members_router

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("library")

app = FastAPI(title="Library Management API", version="2.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials="*" not in settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
    max_age=600,
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    logger.info("%s %s -> %s (%.1f ms)", request.method, request.url.path, response.status_code, elapsed_ms)
    return response


@app.exception_handler(LibraryError)
async def library_error_handler(request: Request, exc: LibraryError):
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthError) else None
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message}, headers=headers)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    messages = []
    for err in exc.errors():
        field = ".".join(str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path"))
        messages.append(f"{field}: {err.get('msg')}" if field else str(err.get("msg")))
    return JSONResponse(status_code=400, content={"error": ", ".join(messages) or "Invalid request"})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    # Internals stay in the server log
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


app.include_router(auth_router)
app.include_router(books_router)
app.include_router(members_router)
app.include_router(librarians_router)
app.include_router(dashboard_router)


def ensure_default_admin(db: Session) -> None:
    """Create the bootstrap admin account if it does not exist yet."""
    if not settings.default_admin_password:
        return
    admin = db.query(models.User).filter(models.User.email == settings.default_admin_email).first()
    if admin:
        return
    admin = models.User(
        username=settings.default_admin_username,
        email=settings.default_admin_email,
        password_hash=auth_utils.get_password_hash(settings.default_admin_password),
        role="admin",
        created_at=datetime.utcnow(),
    )
    db.add(admin)
    db.commit()
    logger.info("Created default admin user %s", settings.default_admin_email)


@app.on_event("startup")
def on_startup():
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        ensure_default_admin(db)
    finally:
        db.close()


@app.get("/health")
def health(db: Session = Depends(get_db)):
    """Basic health check endpoint. Returns DB connectivity and basic counts."""
    try:
        db.execute(text("SELECT 1"))
        total_books = db.query(func.count(models.Book.id)).scalar()
        total_members = db.query(func.count(models.Member.id)).scalar()
    except SQLAlchemyError:
        logger.exception("Health check failed")
        return JSONResponse(status_code=503, content={"status": "error", "database": "disconnected"})
    return {
        "status": "ok",
        "database": "connected",
        "total_books": total_books,
        "total_members": total_members,
        "timestamp": datetime.utcnow().isoformat(),
    }


if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=settings.port)
