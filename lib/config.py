"""Configuration management for the application."""
import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _env_int(key: str, default: int) -> int:
    raw = os.getenv(key)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{key} must be an integer, got {raw!r}")


def _env_float(key: str, default: float) -> float:
    raw = os.getenv(key)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{key} must be a number, got {raw!r}")


# Supabase configuration
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_SERVICE_KEY = os.getenv("SUPABASE_SERVICE_KEY")

# Model provider configuration ("openrouter" or "openai")
LLM_PROVIDER = os.getenv("LLM_PROVIDER", "openrouter").strip().lower()
OPENROUTER_API_KEY = os.getenv("OPENROUTER_API_KEY")
OPENROUTER_BASE_URL = os.getenv("OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1")
OPENROUTER_SITE_URL = os.getenv("OPENROUTER_SITE_URL", "https://salescoach.local")
OPENROUTER_APP_NAME = os.getenv("OPENROUTER_APP_NAME", "Sales Coach Agent")
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")

AGENT_DEFAULT_MODEL = os.getenv("AGENT_DEFAULT_MODEL", "gpt-4o")
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "text-embedding-3-small")

# Context assembly
CONTEXT_CACHE_TTL_SECONDS = _env_float("CONTEXT_CACHE_TTL_SECONDS", 300.0)
CONTEXT_CACHE_MAX_ENTRIES = _env_int("CONTEXT_CACHE_MAX_ENTRIES", 100)
SOURCE_FETCH_TIMEOUT_SECONDS = _env_float("SOURCE_FETCH_TIMEOUT_SECONDS", 15.0)
WORKSPACE_SEARCH_TOP_K = _env_int("WORKSPACE_SEARCH_TOP_K", 5)

# Streaming responses are cut off after this many seconds
AGENT_MAX_DURATION_SECONDS = _env_float("AGENT_MAX_DURATION_SECONDS", 60.0)

# Run logging
AGENT_RUNS_TABLE = os.getenv("AGENT_RUNS_TABLE", "agent_runs")
AGENT_TYPE = os.getenv("AGENT_TYPE", "sales_coach")

# Usage metering (disabled when no token is set)
OPENMETER_BASE_URL = os.getenv("OPENMETER_BASE_URL", "https://openmeter.cloud")
OPENMETER_TOKEN = os.getenv("OPENMETER_TOKEN")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# USD per 1M tokens: (prompt, completion). Keyed by resolved model id.
MODEL_PRICING = {
    "openai/gpt-4o": (2.50, 10.00),
    "openai/gpt-4o-mini": (0.15, 0.60),
    "openai/gpt-4-turbo": (10.00, 30.00),
    "openai/gpt-3.5-turbo": (0.50, 1.50),
    "anthropic/claude-sonnet-4.5": (3.00, 15.00),
    "anthropic/claude-3.5-sonnet": (3.00, 15.00),
    "anthropic/claude-3.5-haiku": (0.80, 4.00),
    "anthropic/claude-3-opus": (15.00, 75.00),
    "google/gemini-pro-1.5": (1.25, 5.00),
    "google/gemini-flash-1.5": (0.075, 0.30),
    "google/gemini-2.0-flash-exp:free": (0.0, 0.0),
    "perplexity/sonar-pro": (3.00, 15.00),
    "perplexity/sonar": (1.00, 1.00),
}
