"""
Configuration settings for the SalesTax pipeline.

This module loads environment variables and provides configuration settings
for the application.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Base directory
BASE_DIR = Path(__file__).resolve().parent.parent

# Server settings
PORT = int(os.getenv("PORT", "8080"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Rate service settings
RATE_SERVICE_URL = os.getenv(
    "RATE_SERVICE_URL", "https://gis.cpa.texas.gov/api/v1/salestax/rates"
)
RATE_SERVICE_API_KEY = os.getenv("RATE_SERVICE_API_KEY", "")
RATE_SERVICE_CLIENT_ID = os.getenv("RATE_SERVICE_CLIENT_ID", "")
RATE_SERVICE_KEY_HEADER = "X-Api-Key"
RATE_SERVICE_CLIENT_HEADER = "X-Client-Id"

# Pipeline settings
LOOKUP_CONCURRENCY = int(os.getenv("LOOKUP_CONCURRENCY", "10"))
LOOKUP_TIMEOUT_SECONDS = float(os.getenv("LOOKUP_TIMEOUT_SECONDS", "30"))

# API settings
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "*").split(",")
    if origin.strip()
]
CORS_METHODS = ["POST", "OPTIONS"]
CORS_HEADERS = ["Content-Type"]
UPLOAD_FIELD_NAME = os.getenv("UPLOAD_FIELD_NAME", "csvfile")
