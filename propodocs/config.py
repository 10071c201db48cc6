import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./propodocs.db")

# Security - owner bearer tokens are HS256 JWTs signed with SECRET_KEY
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    import warnings

    warnings.warn(
        "SECRET_KEY not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2
    )
    SECRET_KEY = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

# Frontend base URL for signing links (/c/<access_token>)
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")

# Resend Email Configuration
RESEND_API_KEY = os.getenv("RESEND_API_KEY")
EMAIL_FROM_ADDRESS = os.getenv("EMAIL_FROM_ADDRESS", "Propodocs <contracts@propodocs.com>")

# Provider branding used on generated documents
COMPANY_NAME = os.getenv("COMPANY_NAME", "Propodocs")
DEFAULT_GOVERNING_STATE = os.getenv("DEFAULT_GOVERNING_STATE", "California")

# Headless PDF rendering
PDF_RENDER_TIMEOUT = float(os.getenv("PDF_RENDER_TIMEOUT", "60"))

# Public signing endpoints rate limit (requests per window per IP)
RATE_LIMIT_ENABLED = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"
PUBLIC_RATE_LIMIT = int(os.getenv("PUBLIC_RATE_LIMIT", "30"))
PUBLIC_RATE_WINDOW = int(os.getenv("PUBLIC_RATE_WINDOW", "60"))
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
