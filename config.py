from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path


BACKEND_DIR = Path(__file__).resolve().parent

logger = logging.getLogger(__name__)

# Load .env file from the backend folder if present
try:
    from dotenv import load_dotenv

    _env_file = BACKEND_DIR / ".env"
    if _env_file.exists():
        load_dotenv(_env_file, override=False)
        logger.info("Loaded .env from %s", _env_file)
except Exception as e:  # pylint: disable=broad-except
    logger.warning("Error loading .env: %s", e)


@dataclass(frozen=True)
class Settings:
    mongodb_uri: str | None
    mongodb_db: str

    host: str
    port: int
    debug: bool
    log_level: str

    # Frontend origin (CORS, payment redirects) and public server URL
    client_url: str
    server_base_url: str

    # JWT keys and lifetimes (seconds)
    access_token_key: str
    access_token_life: int
    refresh_token_key: str
    refresh_token_life: int
    max_refresh_tokens: int

    # Redis holds OTP codes and cooldowns
    redis_url: str | None
    otp_ttl: int
    otp_cooldown: int

    # SMTP
    smtp_host: str
    smtp_port: int
    smtp_user: str
    smtp_password: str
    smtp_from_name: str

    # Cloudinary settings for product images and avatars
    cloudinary_cloud_name: str | None
    cloudinary_api_key: str | None
    cloudinary_api_secret: str | None

    # VNPay
    vnp_tmn_code: str
    vnp_hash_secret: str
    vnp_url: str
    vnp_return_url: str

    # ZaloPay
    zp_app_id: str
    zp_key1: str
    zp_key2: str
    zp_create_endpoint: str
    zp_query_endpoint: str
    zp_fe_redirect_url: str

    # Groq chatbot
    groq_api_key: str | None
    groq_model: str

    shipping_fee: int


def _get_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}


def _get_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def get_settings() -> Settings:
    client_url = os.getenv("CLIENT_URL", "http://localhost:5173")

    return Settings(
        mongodb_uri=os.getenv("MONGODB_URI") or os.getenv("MONGODB_CONN"),
        mongodb_db=os.getenv("MONGODB_DB", "phuyen_store"),
        host=os.getenv("HOST", "127.0.0.1"),
        port=_get_int("PORT", 3000),
        debug=_get_bool("FLASK_DEBUG", False),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        client_url=client_url,
        server_base_url=os.getenv("SERVER_BASE_URL", "http://localhost:3000"),
        access_token_key=os.getenv("ACCESS_TOKEN_KEY", "phuyen-access-secret-change-in-production"),
        access_token_life=_get_int("ACCESS_TOKEN_LIFE", 15 * 60),
        refresh_token_key=os.getenv("REFRESH_TOKEN_KEY", "phuyen-refresh-secret-change-in-production"),
        refresh_token_life=_get_int("REFRESH_TOKEN_LIFE", 7 * 24 * 3600),
        max_refresh_tokens=_get_int("MAX_REFRESH_TOKENS", 5),
        redis_url=os.getenv("REDIS_URL"),
        otp_ttl=_get_int("OTP_TTL", 120),
        otp_cooldown=_get_int("OTP_COOLDOWN", 60),
        smtp_host=os.getenv("SMTP_HOST", "smtp.gmail.com"),
        smtp_port=_get_int("SMTP_PORT", 587),
        smtp_user=os.getenv("SMTP_USER") or os.getenv("EMAIL_USER", ""),
        smtp_password=os.getenv("SMTP_PASSWORD") or os.getenv("EMAIL_PASS", ""),
        smtp_from_name=os.getenv("SMTP_FROM_NAME", "Đặc sản Phú Yên"),
        cloudinary_cloud_name=os.getenv("CLOUDINARY_CLOUD_NAME"),
        cloudinary_api_key=os.getenv("CLOUDINARY_API_KEY"),
        cloudinary_api_secret=os.getenv("CLOUDINARY_API_SECRET"),
        vnp_tmn_code=os.getenv("VNP_TMN_CODE", ""),
        vnp_hash_secret=os.getenv("VNP_HASH_SECRET", ""),
        vnp_url=os.getenv("VNP_URL", "https://sandbox.vnpayment.vn/paymentv2/vpcpay.html"),
        vnp_return_url=os.getenv("VNP_RETURN_URL", "http://localhost:3000/api/vnpay/return"),
        zp_app_id=os.getenv("ZP_APP_ID", ""),
        zp_key1=os.getenv("ZP_KEY1", ""),
        zp_key2=os.getenv("ZP_KEY2", ""),
        zp_create_endpoint=os.getenv("ZP_CREATE_ENDPOINT", "https://sb-openapi.zalopay.vn/v2/create"),
        zp_query_endpoint=os.getenv("ZP_QUERY_ENDPOINT", "https://sb-openapi.zalopay.vn/v2/query"),
        zp_fe_redirect_url=os.getenv("ZP_FE_REDIRECT_URL", f"{client_url}/checkout"),
        groq_api_key=os.getenv("GROQ_API_KEY"),
        groq_model=os.getenv("GROQ_MODEL", "llama-3.1-8b-instant"),
        shipping_fee=_get_int("SHIPPING_FEE", 30000),
    )
