"""
Portal Settings

Explicit defaults for the graduation workflow core. Every value can be
overridden through the environment (or a local .env file).
"""

import os

from dotenv import load_dotenv

load_dotenv()

# GradSys backend
API = {
    "base_url": os.environ.get("GRADSYS_API_BASE_URL", "http://localhost:5278/api"),
    "request_timeout": float(os.environ.get("GRADSYS_REQUEST_TIMEOUT", "30")),  # seconds
    "page_size": int(os.environ.get("GRADSYS_PAGE_SIZE", "500")),
    "auth_token_env": "GRADSYS_AUTH_TOKEN",
}

# Roster / eligibility cache
CACHE = {
    "ttl_seconds": float(os.environ.get("PORTAL_CACHE_TTL", "3600")),  # 1 hour
    "namespace": os.environ.get("PORTAL_CACHE_NAMESPACE", "gradportal"),
    "memory_maxsize": int(os.environ.get("PORTAL_CACHE_MAXSIZE", "4096")),
    "quota_bytes": int(os.environ.get("PORTAL_CACHE_QUOTA_BYTES", str(5 * 1024 * 1024))),
    "storage_path": os.environ.get("PORTAL_CACHE_PATH") or None,  # None = in-memory store
}

# Batch profiles for the rate limited executor.
# Delays are seconds between waves / before a retry.
RATE_LIMITS = {
    "default": {
        "concurrency": 20,
        "inter_wave_delay": 1.0,
        "max_retries": 3,
        "retry_delay": 2.0,
        "request_timeout": API["request_timeout"],
    },
    "eligibility": {
        "concurrency": int(os.environ.get("ELIGIBILITY_BATCH_CONCURRENCY", "5")),
        "inter_wave_delay": float(os.environ.get("ELIGIBILITY_BATCH_DELAY", "0.2")),
        "max_retries": int(os.environ.get("ELIGIBILITY_BATCH_RETRIES", "2")),
        "retry_delay": float(os.environ.get("ELIGIBILITY_RETRY_DELAY", "0.5")),
        "request_timeout": API["request_timeout"],
    },
    "transitions": {
        "concurrency": 5,
        "inter_wave_delay": 0.2,
        "max_retries": 1,
        "retry_delay": 0.5,
        "request_timeout": API["request_timeout"],
    },
}
