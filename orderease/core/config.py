# orderease/core/config.py
import logging
import os
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r, using %s", name, raw, default)
        return default


class Settings:
    PROJECT_NAME: str = "OrderEase Chat Ordering"

    DATABASE_URL: str = os.getenv("DATABASE_URL")

    # Intelligent order parser (Groq via LangChain)
    GROQ_API_KEY: str = os.getenv("GROQ_API_KEY")
    GROQ_MODEL: str = os.getenv("GROQ_MODEL", "llama-3.1-8b-instant")
    # "intelligent" tries the LLM first, "fallback" only runs the token scanner
    ORDER_PARSER: str = os.getenv("ORDER_PARSER", "intelligent").strip().lower()

    # Meta / WhatsApp Cloud API
    META_API_TOKEN: str = os.getenv("META_API_TOKEN")
    WHATSAPP_PHONE_ID: str = os.getenv("WHATSAPP_PHONE_ID")
    WHATSAPP_VERIFY_TOKEN: str = os.getenv("WHATSAPP_VERIFY_TOKEN", "orderease_verify")
    GRAPH_API_VERSION: str = os.getenv("GRAPH_API_VERSION", "v18.0")

    # Razorpay payment links
    RAZORPAY_KEY_ID: str = os.getenv("RAZORPAY_KEY_ID")
    RAZORPAY_KEY_SECRET: str = os.getenv("RAZORPAY_KEY_SECRET")
    RAZORPAY_WEBHOOK_SECRET: str = os.getenv("RAZORPAY_WEBHOOK_SECRET")
    RAZORPAY_API_URL: str = os.getenv("RAZORPAY_API_URL", "https://api.razorpay.com/v1")
    CURRENCY: str = os.getenv("CURRENCY", "INR")
    CURRENCY_SYMBOL: str = os.getenv("CURRENCY_SYMBOL", "₹")

    # Public URLs used in payment callbacks and the tracking redirect
    BACKEND_URL: str = os.getenv("BACKEND_URL", "http://localhost:8000")
    FRONTEND_URL: str = os.getenv("FRONTEND_URL", "http://localhost:5173")

    # Display ids are scoped to the restaurant's calendar day
    TIMEZONE: str = os.getenv("TIMEZONE", "Asia/Kolkata")

    SESSION_TTL_MINUTES: int = _int_env("SESSION_TTL_MINUTES", 30)
    MAX_HISTORY: int = _int_env("MAX_HISTORY", 10)
    MAX_RETRIES: int = _int_env("MAX_RETRIES", 3)
    EXTERNAL_TIMEOUT_SECONDS: int = _int_env("EXTERNAL_TIMEOUT_SECONDS", 10)

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

settings = Settings()

# Validation Check
if not settings.DATABASE_URL:
    # Fallback for local testing if .env is missing (Use SQLite)
    logger.warning("DATABASE_URL not found. Using SQLite for local testing.")
    settings.DATABASE_URL = "sqlite:///./local_orderease.db"
