"""
Billing constants: fixed package catalog, conversion rates and windows
"""

from decimal import Decimal

# Credits charged per request, by service
CREDIT_CONVERSION = {
    "AI_API": Decimal("0.1"),
    "CRAWL_API": Decimal("1"),
}

# Rolling rate-limit windows (seconds)
TIME_MINUTE_LIMIT = 60
TIME_DAY_LIMIT = 24 * 60 * 60

# AI feature defaults for derived packages
AI_TOKENS_PER_REQUEST = 1000
AI_MAX_TOKENS = 10000
AI_RPM = 10
AI_RPD_CAP = 200
AI_TPM = 10000
AI_TPD_CAP = 10000

# Custom package request ratios
CUSTOM_AI_CREDIT_DIVISOR = Decimal("0.1")
CUSTOM_AI_REQUEST_RATIO = Decimal("0.5")
CUSTOM_CRAWL_REQUEST_RATIO = Decimal("0.5")

STANDARD_CREDIT_PACKAGES = [
    {
        "name": "SMALL",
        "credit_amount": 100,
        "price_per_credit": Decimal("0.10"),
        "total_price": Decimal("10.00"),
        "description": "Perfect for small businesses getting started",
    },
    {
        "name": "MEDIUM",
        "credit_amount": 500,
        "price_per_credit": Decimal("0.08"),
        "total_price": Decimal("40.00"),
        "description": "Most popular for growing businesses",
    },
    {
        "name": "LARGE",
        "credit_amount": 1000,
        "price_per_credit": Decimal("0.06"),
        "total_price": Decimal("60.00"),
        "description": "Best value for established businesses",
    },
    {
        "name": "ENTERPRISE",
        "credit_amount": 5000,
        "price_per_credit": Decimal("0.04"),
        "total_price": Decimal("200.00"),
        "description": "Enterprise-grade solution for large operations",
    },
]
