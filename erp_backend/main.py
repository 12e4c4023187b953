# erp_backend/main.py

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from erp_backend.config import get_settings
from erp_backend.errors import ConfigError, ERPError

settings = get_settings()

# ---------------- LOGGING ----------------
def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


configure_logging(settings.log_level)
logger = logging.getLogger("erp_backend")

app = FastAPI(title="ERP Task Backend")

# ---------------- CORS ----------------
origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:5175",
    "http://127.0.0.1:5175",
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]

if settings.frontend_origin:
    origins.append(settings.frontend_origin)

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------- ERRORS ----------------
@app.exception_handler(ERPError)
async def erp_error_handler(request: Request, exc: ERPError):
    if exc.status_code >= 500:
        logger.error("request_failed", extra={"path": request.url.path, "error": exc.message})
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(ConfigError)
async def config_error_handler(request: Request, exc: ConfigError):
    logger.error("server_misconfigured", extra={"path": request.url.path, "error": str(exc)})
    return JSONResponse(
        status_code=500,
        content={"error": "Server configuration error", "details": str(exc)},
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={
            "error": "Invalid request",
            "details": [{"loc": list(e.get("loc", ())), "msg": e.get("msg", "")} for e in exc.errors()],
        },
    )


# ---------------- DATABASE INIT ----------------
from erp_backend.database import Base, SessionLocal, engine  # noqa: E402
from erp_backend.models import notification, project, report_audit_log, task, user  # noqa: E402,F401
from erp_backend.auth.permissions import ensure_roles  # noqa: E402

logger.info("database_init")
Base.metadata.create_all(bind=engine)
with SessionLocal() as _db:
    ensure_roles(_db)

# ---------------- ROUTERS ----------------
from erp_backend.auth.auth_router import router as auth_router  # noqa: E402
from erp_backend.notification.notification_router import router as notification_router  # noqa: E402
from erp_backend.project.project_router import router as project_router  # noqa: E402
from erp_backend.report.report_router import router as report_router  # noqa: E402
from erp_backend.task.task_router import router as task_router  # noqa: E402

app.include_router(auth_router, prefix="/auth")
# the others carry their own prefix
app.include_router(project_router)
app.include_router(task_router)
app.include_router(notification_router)
app.include_router(report_router)


# ---------------- ROOT ----------------
@app.get("/")
def read_root():
    return {"message": "Backend running"}
