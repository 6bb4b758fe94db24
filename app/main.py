import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from app.core.config import settings
from app.core.database import SessionLocal
from app.core.errors import AppError, ValidationError
from app.api.routes.organizations import router as organizations_router
from app.api.routes.properties import router as properties_router
from app.api.routes.vendors import router as vendors_router
from app.api.routes.requests import router as requests_router
from app.api.routes.jobs import router as jobs_router
from app.api.routes.invoices import router as invoices_router
from app.api.routes.notifications import router as notifications_router
from app.api.routes.audit_logs import router as audit_logs_router

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


# 1) Create the app FIRST
app = FastAPI(title="DispatchToGo Backend")

# 2) Add CORS Middleware BEFORE routes
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# 3) Error rendering: {"error": kind, "message": text, ...}
@app.exception_handler(AppError)
def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=exc.headers)


@app.exception_handler(RequestValidationError)
def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(p) for p in first.get("loc", ()) if p not in ("body", "query", "path"))
    message = first.get("msg", "Invalid request")
    if field:
        message = f"{field}: {message}"
    err = ValidationError(message, extra={"fields": [".".join(str(p) for p in e.get("loc", ())) for e in errors]})
    return JSONResponse(status_code=err.status_code, content=err.to_dict())


@app.exception_handler(Exception)
def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"error": "InternalError", "message": "Something went wrong"},
    )


# 4) Include routers AFTER app is created
app.include_router(organizations_router)
app.include_router(properties_router)
app.include_router(vendors_router)
app.include_router(requests_router)
app.include_router(jobs_router)
app.include_router(invoices_router)
app.include_router(notifications_router)
app.include_router(audit_logs_router)


# 5) Health check endpoints
@app.get("/health")
def health():
    return {"ok": True, "service": "backend"}


@app.get("/db-health")
def db_health():
    db = SessionLocal()
    try:
        db.execute(text("select 1"))
        return {"ok": True, "db": "connected"}
    finally:
        db.close()
