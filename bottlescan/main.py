import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Imports ALL models so SQLAlchemy registers tables + FKs before first use
import bottlescan.models  # noqa: F401
from bottlescan.core.config import settings
from bottlescan.core.logging import setup_logging
from bottlescan.services.errors import ServiceError

# Routers
from bottlescan.routers.auth import router as auth_router
from bottlescan.routers.me import router as me_router

from bottlescan.routers.otp import router as otp_router
from bottlescan.routers.redeem import router as redeem_router
from bottlescan.routers.coupons import router as coupons_router

from bottlescan.routers.admin_campaigns import router as admin_campaigns_router
from bottlescan.routers.admin_clients import router as admin_clients_router
from bottlescan.routers.admin_dashboard import router as admin_dashboard_router
from bottlescan.routers.admin_qr import router as admin_qr_router
from bottlescan.routers.internal_qr_worker import router as internal_qr_worker_router

from bottlescan.routers.client_dashboard import router as client_dashboard_router

setup_logging()
logger = logging.getLogger("bottlescan.main")

app = FastAPI(title="bottlescan")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message, "code": exc.code})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    fields = [".".join(str(p) for p in err.get("loc", ()) if p != "body") for err in exc.errors()]
    return JSONResponse(
        status_code=400,
        content={"error": "Missing or invalid fields", "code": "invalid_input", "fields": fields},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal Server Error", "code": "system_error"})


# Auth
app.include_router(auth_router)
app.include_router(me_router)

# Public scan flow
app.include_router(otp_router)
app.include_router(redeem_router)
app.include_router(coupons_router)

# Admin
app.include_router(admin_campaigns_router)
app.include_router(admin_clients_router)
app.include_router(admin_dashboard_router)
app.include_router(admin_qr_router)
app.include_router(internal_qr_worker_router)

# Client
app.include_router(client_dashboard_router)
