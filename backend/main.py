# backend/main.py
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from database import init_db
from dotenv import load_dotenv
import logging

load_dotenv()

from config import settings
from services.errors import CheckoutError

# Routers
from routes.cart import router as cart_router
from routes.addresses import router as addresses_router
from routes.service_areas import router as service_areas_router
from routes.delivery_slots import router as delivery_slots_router
from routes.coupons import router as coupons_router
from routes.orders import router as orders_router
from routes.payments import router as payments_router
from routes.wallet import router as wallet_router
from routes.admin import router as admin_router

logger = logging.getLogger(__name__)

# Create tables on startup
init_db()

app = FastAPI(title="Grocery Checkout API", version="1.0.0")

origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]
if settings.FRONTEND_URL and settings.FRONTEND_URL not in origins:
    origins.append(settings.FRONTEND_URL)

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Every checkout rejection carries a machine readable code for the storefront
@app.exception_handler(CheckoutError)
async def checkout_error_handler(request: Request, exc: CheckoutError):
    if exc.status_code >= 500:
        logger.error("Checkout error %s on %s: %s", exc.code, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_detail()})

# Router registration
app.include_router(cart_router)
app.include_router(addresses_router)
app.include_router(service_areas_router)
app.include_router(delivery_slots_router)
app.include_router(coupons_router)
app.include_router(orders_router)
app.include_router(payments_router)
app.include_router(wallet_router)
app.include_router(admin_router)

@app.get("/")
def read_root():
    return {"message": "Grocery Checkout API is running"}
