from dotenv import load_dotenv
load_dotenv()

import logging
import os
from urllib.parse import urlparse

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.routing import APIRoute

from survey_app.db.schema import init_schema
from survey_app.dependencies import get_settings

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def custom_generate_unique_id(route: APIRoute) -> str:
    return f"{route.tags[0]}_{route.name}" if route.tags else route.name


app = FastAPI(
    title="Survey Booking API",
    description="Booking lifecycle and split-payment coordination",
    version="2.0.0",
    generate_unique_id_function=custom_generate_unique_id,
)


# ============================
#  CORS
# ============================
origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
]

FRONTEND_URL = os.getenv("FRONTEND_URL")
if FRONTEND_URL:
    origins.append(FRONTEND_URL)

clean_origins = []
for url in origins:
    parsed = urlparse(url)
    if parsed.scheme and parsed.netloc:
        clean_origins.append(f"{parsed.scheme}://{parsed.netloc}")
    else:
        clean_origins.append(url)

origins = list(sorted(set(clean_origins)))

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================
#  Startup
# ============================
@app.on_event("startup")
def on_startup() -> None:
    settings = get_settings()
    logger.info("resolved DB_PATH = %s", settings.db_path)
    init_schema(settings.db_path)
    if settings.fake_payments_enabled:
        logger.warning("fake payments are ENABLED (dev routes mounted under /dev)")


# ============================
# Routers
# ============================

# --- Bookings ---
from survey_app.booking.api.booking_api import router as booking_router
from survey_app.booking.api.vendor_booking_api import router as vendor_booking_router
from survey_app.booking.api.admin_booking_api import router as admin_booking_router
from survey_app.booking.api.admin_refund_api import router as admin_refund_router

# --- Integrations ---
from survey_app.integrations.payments.razorpay.razorpay_webhook_api import (
    router as razorpay_webhook_router,
)

# --- Dev ---
from survey_app.dev.dev_api import router as dev_router

app.include_router(booking_router)
app.include_router(vendor_booking_router)
app.include_router(admin_booking_router)
app.include_router(admin_refund_router)
app.include_router(razorpay_webhook_router)
app.include_router(dev_router, prefix="/dev")


@app.get("/")
def root():
    return {"message": "Survey Booking API is running"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "survey_app.main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        log_level=os.getenv("LOG_LEVEL", "info").lower(),
    )
