"""
Environment configuration for the SEO Content Analyzer.
Values are read once at import time; constructors take them as defaults.
"""
import os
from typing import List

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# SERP provider (DataForSEO)
DATAFORSEO_LOGIN = os.getenv("DATAFORSEO_LOGIN")
DATAFORSEO_PASSWORD = os.getenv("DATAFORSEO_PASSWORD")
DATAFORSEO_API_URL = os.getenv(
    "DATAFORSEO_API_URL",
    "https://api.dataforseo.com/v3/serp/google/organic/live/advanced"
)
DATAFORSEO_LOCATION_CODE = int(os.getenv("DATAFORSEO_LOCATION_CODE", 2804))
DATAFORSEO_LANGUAGE_CODE = os.getenv("DATAFORSEO_LANGUAGE_CODE", "uk")

# Content fetching
DEFAULT_PROXY_TEMPLATES = [
    "https://api.allorigins.win/raw?url={url}",
    "https://corsproxy.io/?{url}",
    "https://api.codetabs.com/v1/proxy?quest={url}",
]


def _split_templates(raw: str) -> List[str]:
    return [part.strip() for part in raw.split(",") if part.strip()]


FETCH_PROXY_TEMPLATES = _split_templates(os.getenv("FETCH_PROXY_TEMPLATES", "")) or DEFAULT_PROXY_TEMPLATES
FETCH_MAX_RETRIES = int(os.getenv("FETCH_MAX_RETRIES", 3))
FETCH_RETRY_DELAY = float(os.getenv("FETCH_RETRY_DELAY", 1.0))  # seconds, multiplied by round index
FETCH_TIMEOUT = float(os.getenv("FETCH_TIMEOUT", 10.0))
FETCH_FAILURE_THRESHOLD = int(os.getenv("FETCH_FAILURE_THRESHOLD", 5))
FETCH_COOLDOWN_SECONDS = float(os.getenv("FETCH_COOLDOWN_SECONDS", 60.0))
COMPETITOR_FETCH_DELAY = float(os.getenv("COMPETITOR_FETCH_DELAY", 2.0))

# Analysis
KEYWORD_WORKERS = int(os.getenv("KEYWORD_WORKERS", 4))
EMBEDDING_DIMENSION = int(os.getenv("EMBEDDING_DIMENSION", 768))
EMBEDDING_CACHE_SIZE = int(os.getenv("EMBEDDING_CACHE_SIZE", 50000))

# Caching and storage
CACHE_TTL_SECONDS = float(os.getenv("CACHE_TTL_SECONDS", 300))
CACHE_MAX_AGE_SECONDS = float(os.getenv("CACHE_MAX_AGE_SECONDS", 3600))
ANALYSIS_STORE_DIR = os.getenv("ANALYSIS_STORE_DIR", "results")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

USER_AGENT = (
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 '
    '(KHTML, like Gecko) Chrome/108.0.0.0 Safari/537.36'
)
