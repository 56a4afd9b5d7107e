# orderease/main.py
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from orderease.api.endpoints import admin, orders, payments, whatsapp
from orderease.core.config import settings
from orderease.core.database import Base, engine
from orderease.core.logging_config import setup_logging

setup_logging()
logger = logging.getLogger(__name__)

# Dev and single-instance deployments; managed databases use alembic
Base.metadata.create_all(bind=engine)

app = FastAPI(
    title=settings.PROJECT_NAME,
    description="WhatsApp restaurant ordering with payment links",
    version="1.0",
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(whatsapp.router, tags=["WhatsApp"])
app.include_router(payments.router, tags=["Payments"])
app.include_router(orders.router, tags=["Orders"])
app.include_router(admin.router, prefix="/admin", tags=["Admin"])


@app.get("/")
def read_root():
    return {"status": f"{settings.PROJECT_NAME} online"}
