"""
Storefront Core - Centralized Configuration
=============================================
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
DB_USER = os.getenv("DB_USER")
DB_PASSWORD = os.getenv("DB_PASSWORD")
DB_HOST = os.getenv("DB_HOST", "localhost")
DB_PORT = os.getenv("DB_PORT", "5432")
DB_NAME = os.getenv("DB_NAME")

DATABASE_URL = os.getenv("DATABASE_URL")
if not DATABASE_URL and all([DB_USER, DB_PASSWORD, DB_HOST, DB_NAME]):
    DATABASE_URL = f"postgresql://{DB_USER}:{DB_PASSWORD}@{DB_HOST}:{DB_PORT}/{DB_NAME}"

if not DATABASE_URL:
    print("[ERROR] Critical: Database config missing in .env (DATABASE_URL or DB_USER, DB_PASSWORD, DB_HOST, DB_NAME)")
    sys.exit(1)


# ==========================================
# 🚚 Pricing Policy
# ==========================================
FREE_COURIER_THRESHOLD = Decimal(os.getenv("FREE_COURIER_THRESHOLD", "2000"))
COURIER_COST = Decimal(os.getenv("COURIER_COST", "300"))
POST_COST = Decimal(os.getenv("POST_COST", "400"))
DISCOUNT_THRESHOLD = Decimal(os.getenv("DISCOUNT_THRESHOLD", "3000"))
DISCOUNT_PERCENT = Decimal(os.getenv("DISCOUNT_PERCENT", "5"))

PICKUP_ADDRESS = os.getenv("PICKUP_ADDRESS", "Store pickup: 1 Example Street")


# ==========================================
# 🛒 Cart / Session
# ==========================================
CART_SESSION_COOKIE = os.getenv("CART_SESSION_COOKIE", "cart_session_id")
USER_ID_HEADER = os.getenv("USER_ID_HEADER", "X-User-Id")
STAFF_ID_HEADER = os.getenv("STAFF_ID_HEADER", "X-Staff-Id")

COOKIE_SECURE = os.getenv("COOKIE_SECURE", "false").lower() == "true"


# ==========================================
# 🔧 App
# ==========================================
DEBUG = os.getenv("DEBUG", "false").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG" if DEBUG else "INFO").upper()

# Base URL for payment redirects
BASE_URL = os.getenv("BASE_URL", "http://127.0.0.1:8000")
