"""
CafePreorder - Centralized Configuration
=========================================
All environment variables and constants are loaded here.
No other module should call os.getenv() directly.
"""

import os
import sys
from decimal import Decimal

from dotenv import load_dotenv

load_dotenv()


# ==========================================
# 🗄️ Database
# ==========================================
DATABASE_URL = os.getenv("DATABASE_URL", "")

if not DATABASE_URL:
    DB_USER = os.getenv("DB_USER")
    DB_PASSWORD = os.getenv("DB_PASSWORD")
    DB_HOST = os.getenv("DB_HOST", "localhost")
    DB_PORT = os.getenv("DB_PORT", "5432")
    DB_NAME = os.getenv("DB_NAME")

    if not all([DB_USER, DB_PASSWORD, DB_HOST, DB_NAME]):
        print("[ERROR] Critical: Database config missing in .env (DATABASE_URL or DB_USER, DB_PASSWORD, DB_HOST, DB_NAME)")
        sys.exit(1)

    DATABASE_URL = f"postgresql://{DB_USER}:{DB_PASSWORD}@{DB_HOST}:{DB_PORT}/{DB_NAME}"


# ==========================================
# 🔐 Identity Provider (JWT)
# ==========================================
AUTH_JWT_SECRET = os.getenv("AUTH_JWT_SECRET")
AUTH_JWT_ALGORITHM = os.getenv("AUTH_JWT_ALGORITHM", "HS256")
AUTH_JWT_AUDIENCE = os.getenv("AUTH_JWT_AUDIENCE") or None
AUTH_ROLE_CLAIM = os.getenv("AUTH_ROLE_CLAIM", "user_role")

if not AUTH_JWT_SECRET:
    print("[ERROR] Critical: AUTH_JWT_SECRET missing in .env")
    sys.exit(1)

COOKIE_NAME = "auth_token"


# ==========================================
# 💰 Money & Fees
# ==========================================
CURRENCY = os.getenv("CURRENCY", "INR")
# Fallback when neither the canteen nor the system_settings table define one
DEFAULT_PLATFORM_FEE = Decimal(os.getenv("DEFAULT_PLATFORM_FEE", "3"))


# ==========================================
# 🕒 Pickup & Order Lifetime
# ==========================================
PICKUP_MIN_LEAD_MINUTES = int(os.getenv("PICKUP_MIN_LEAD_MINUTES", "30"))
PICKUP_SLOT_MINUTES = int(os.getenv("PICKUP_SLOT_MINUTES", "15"))
PICKUP_SLOT_COUNT = int(os.getenv("PICKUP_SLOT_COUNT", "8"))

# Unpaid orders older than this are cancelled by the scheduler (0 = never)
PENDING_ORDER_EXPIRE_MINUTES = int(os.getenv("PENDING_ORDER_EXPIRE_MINUTES", "30"))

# Daily statistics are bucketed by calendar day in this timezone
STATS_TIMEZONE = os.getenv("STATS_TIMEZONE", "Asia/Kolkata")


# ==========================================
# 🔄 Sync / Refresh
# ==========================================
SYNC_POLL_INTERVAL_SECONDS = int(os.getenv("SYNC_POLL_INTERVAL_SECONDS", "5"))
SYNC_HTTP_TIMEOUT_SECONDS = float(os.getenv("SYNC_HTTP_TIMEOUT_SECONDS", "10"))
SYNC_STREAM_INTERVAL_SECONDS = float(os.getenv("SYNC_STREAM_INTERVAL_SECONDS", "2"))
SYNC_PAGE_LIMIT = 500
SYNC_STATE_FILE = os.getenv("SYNC_STATE_FILE", os.path.expanduser("~/.cafepreorder/state.json"))


# ==========================================
# 💳 Payment Gateways
# ==========================================
RAZORPAY_KEY_ID = os.getenv("RAZORPAY_KEY_ID", "")
RAZORPAY_KEY_SECRET = os.getenv("RAZORPAY_KEY_SECRET", "")
RAZORPAY_WEBHOOK_SECRET = os.getenv("RAZORPAY_WEBHOOK_SECRET", "")
ENABLED_GATEWAYS = os.getenv("ENABLED_GATEWAYS", "razorpay,sandbox")


# ==========================================
# 🔧 App
# ==========================================
DEBUG = os.getenv("DEBUG", "false").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Base URL for callbacks
BASE_URL = os.getenv("BASE_URL", "http://127.0.0.1:8000")
