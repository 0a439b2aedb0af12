"""
Configuration Module

Loads environment variables and provides configuration constants for the API.
Storage backend and LLM endpoints are all selected here, once per process.

==============================================================================
FEATURES CONFIGURED IN THIS MODULE:
==============================================================================

1. STORAGE BACKEND SELECTION (Feature: pluggable-store)
   - KV_URL / KV_TOKEN: key-value backend (highest priority)
   - BLOB_READ_WRITE_TOKEN: blob backend (used when no KV_URL)
   - DATA_DIR: local filesystem backend (fallback)

2. BLOB CONSISTENCY RETRY (Feature: blob-read-after-write)
   - BLOB_RETRY_ATTEMPTS: total indexed lookups before "not found"
   - BLOB_RETRY_BASE_DELAY: delay unit in seconds, grows linearly

3. RETRY CONFIGURATION FOR RATE LIMITING (Feature: rate-limit-retry)
   - RETRY_MAX_ATTEMPTS: How many times to retry before giving up
   - RETRY_BASE_DELAY: Initial delay (seconds), doubles each retry
   - RETRY_MAX_DELAY: Maximum delay cap to prevent excessive waits

==============================================================================
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

# Load .env file
load_dotenv()

# API
API_TITLE = os.getenv("API_TITLE", "Interview Evals API")
API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("API_PORT", "8000"))
API_DEBUG = os.getenv("API_DEBUG", "false").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# CORS
CORS_ORIGINS = os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:5173").split(",")

# ==============================================================================
# STORAGE (Feature: pluggable-store)
# ==============================================================================
# Priority is fixed: KV_URL > BLOB_READ_WRITE_TOKEN > DATA_DIR.
# KV_URL accepts "sqlite:///path/to/kv.db" for a single-node store or an
# https:// REST endpoint (KV_TOKEN required).
# ==============================================================================
DATA_DIR = os.getenv("DATA_DIR", os.path.join(os.path.dirname(__file__), "..", "..", ".data"))
KV_URL = os.getenv("KV_URL") or os.getenv("KV_REST_API_URL") or ""
KV_TOKEN = os.getenv("KV_TOKEN") or os.getenv("KV_REST_API_TOKEN") or ""
BLOB_READ_WRITE_TOKEN = os.getenv("BLOB_READ_WRITE_TOKEN", "")
BLOB_API_URL = os.getenv("BLOB_API_URL", "https://blob.vercel-storage.com")

# With defaults (3 attempts, 0.2s unit): waits 0.2s, then 0.4s = 0.6s max
BLOB_RETRY_ATTEMPTS = int(os.getenv("BLOB_RETRY_ATTEMPTS", "3"))
BLOB_RETRY_BASE_DELAY = float(os.getenv("BLOB_RETRY_BASE_DELAY", "0.2"))

# Settings are re-read from the store at most this often
SETTINGS_CACHE_SECONDS = float(os.getenv("SETTINGS_CACHE_SECONDS", "5"))

# LLM Configuration (any OpenAI-compatible endpoint)
LLM_BASE_URL = os.getenv("LLM_BASE_URL", "https://api.openai.com/v1")
LLM_API_KEY = os.getenv("LLM_API_KEY") or os.getenv("OPENAI_API_KEY") or ""

# Default models per role, overridable at runtime through stored settings
AGENT_A_MODEL = os.getenv("AGENT_A_MODEL", "gpt-4o")
AGENT_B_MODEL = os.getenv("AGENT_B_MODEL", "gpt-4o-mini")
AGENT_C_MODEL = os.getenv("AGENT_C_MODEL", "gpt-4o")

# Conversation limits
MAX_TURNS = int(os.getenv("MAX_TURNS", "30"))

# ==============================================================================
# RETRY CONFIGURATION FOR RATE LIMITING (Feature: rate-limit-retry)
# ==============================================================================
# With defaults (5 attempts, 2s base): waits 2s, 4s, 8s, 16s = 30s max
# ==============================================================================
RETRY_MAX_ATTEMPTS = int(os.getenv("RETRY_MAX_ATTEMPTS", "5"))
RETRY_BASE_DELAY = float(os.getenv("RETRY_BASE_DELAY", "2.0"))
RETRY_MAX_DELAY = float(os.getenv("RETRY_MAX_DELAY", "60.0"))


@dataclass(frozen=True)
class StorageConfig:
    """Everything the backend selector needs, captured once at startup."""
    data_dir: str = DATA_DIR
    kv_url: str = ""
    kv_token: str = ""
    blob_token: str = ""
    blob_api_url: str = BLOB_API_URL
    blob_retry_attempts: int = 3
    blob_retry_base_delay: float = 0.2
    settings_cache_seconds: float = 5.0


def load_storage_config(data_dir: Optional[str] = None) -> StorageConfig:
    return StorageConfig(
        data_dir=data_dir or DATA_DIR,
        kv_url=KV_URL,
        kv_token=KV_TOKEN,
        blob_token=BLOB_READ_WRITE_TOKEN,
        blob_api_url=BLOB_API_URL,
        blob_retry_attempts=BLOB_RETRY_ATTEMPTS,
        blob_retry_base_delay=BLOB_RETRY_BASE_DELAY,
        settings_cache_seconds=SETTINGS_CACHE_SECONDS,
    )
