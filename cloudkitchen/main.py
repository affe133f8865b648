import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from cloudkitchen.config import settings
from cloudkitchen.db import Base, engine
from cloudkitchen.errors import DomainError
from cloudkitchen.middleware import RequestIdMiddleware
from cloudkitchen.routers import admin, analytics, coupons, delivery, menu, orders, payments, reports, reviews
from cloudkitchen.services.notifications import NotificationConfig
import cloudkitchen.models  # noqa: F401  (registers tables on Base.metadata)

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("cloudkitchen")

app = FastAPI(title="CloudKitchen API", version="0.1.0")

@app.on_event("startup")
def init_db():
    Base.metadata.create_all(bind=engine)
    app.state.notification_config = NotificationConfig.from_settings(settings)
    logger.info("started (%s), notifications %s", settings.APP_ENV,
                "live" if app.state.notification_config.sms_provider else "demo")

@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

# Middlewares
app.add_middleware(RequestIdMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(menu.router)
app.include_router(delivery.router)
app.include_router(coupons.router)
app.include_router(payments.router)
app.include_router(orders.router)
app.include_router(admin.router)
app.include_router(reviews.router)
app.include_router(reports.router)
app.include_router(analytics.router)

@app.get("/healthz")
def healthz():
    return {"ok": True}
