import os

from dotenv import load_dotenv


load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_list(value: str | None, default: list[str]) -> list[str]:
    if not value:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]


APP_ENV = os.getenv("APP_ENV", "development")

CORS_ALLOW_ORIGINS = _get_list(
    os.getenv("CORS_ALLOW_ORIGINS"),
    default=["http://localhost:5173", "http://localhost:5174"],
)
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", str(7 * 24 * 60)))

CURRENCY = os.getenv("CURRENCY", "INR")

RAZORPAY_KEY_ID = os.getenv("RAZORPAY_KEY_ID", "")
RAZORPAY_KEY_SECRET = os.getenv("RAZORPAY_KEY_SECRET", "")

STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY", "")
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET", "")
STRIPE_TRUST_REDIRECT = _get_bool(os.getenv("STRIPE_TRUST_REDIRECT"), default=False)

PAYMENT_PROVIDER_TIMEOUT_SECONDS = float(os.getenv("PAYMENT_PROVIDER_TIMEOUT_SECONDS", "10"))


def validate_runtime_config() -> None:
    if APP_ENV.lower() != "production":
        return
    if JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
    if STRIPE_TRUST_REDIRECT:
        raise RuntimeError("STRIPE_TRUST_REDIRECT cannot be enabled in production.")
