"""
Application-wide constants
"""

PROJECT_NAME = "Credit Ledger Worker"
VERSION = "1.0.0"
DEFAULT_PORT = 8001
ENVIRONMENT_DEVELOPMENT = "development"
DEFAULT_APP_NAME = "Content Studio"
