"""
Settings

Runtime configuration from environment variables (loaded from .env by main.py).
"""

import os

# Storage
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_KEY = os.getenv("SUPABASE_SERVICE_KEY") or os.getenv("SUPABASE_KEY")
DEFAULT_ORGANIZATION_ID = os.getenv("DEFAULT_ORGANIZATION_ID", "")

# Pricing
VAT_RATE = float(os.getenv("VAT_RATE", "0.20"))

# Workflow
TERMINAL_STATUSES = [
    s.strip()
    for s in os.getenv("TERMINAL_STATUSES", "completed,cancelled,expired,no_show").split(",")
    if s.strip()
]
LINK_EXPIRY_WARNING_HOURS = int(os.getenv("LINK_EXPIRY_WARNING_HOURS", "24"))
BOARD_LOOKBACK_DAYS = int(os.getenv("BOARD_LOOKBACK_DAYS", "7"))

# KPI
ADVISOR_MIN_HC_COUNT = int(os.getenv("ADVISOR_MIN_HC_COUNT", "5"))

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
