"""
Runtime configuration
All settings come from the environment (.env is loaded first) with local defaults.
"""

import os

from dotenv import load_dotenv

load_dotenv()

# ─── Local store ───────────────────────────────────────────────────────────────

LOCAL_DB_URL = os.getenv("LOCAL_DB_URL", "sqlite:///./booklet_library.db")
SEED_LIBRARY_PATH = os.getenv("SEED_LIBRARY_PATH", "")

# ─── Remote backend (PostgREST / Supabase) ─────────────────────────────────────

SUPABASE_URL = os.getenv("SUPABASE_URL", os.getenv("VITE_SUPABASE_URL", ""))
SUPABASE_KEY = os.getenv("SUPABASE_KEY", os.getenv("SUPABASE_SERVICE_ROLE", ""))
# Optional forwarding proxy with a tighter request-body limit
SUPABASE_PROXY_URL = os.getenv("SUPABASE_PROXY_URL", "")
HTTP_TIMEOUT_SECONDS = float(os.getenv("HTTP_TIMEOUT_SECONDS", "30"))

# ─── Sync ──────────────────────────────────────────────────────────────────────

SYNC_INTERVAL_SECONDS = float(os.getenv("SYNC_INTERVAL_SECONDS", "90"))
SYNC_PAGE_SIZE = int(os.getenv("SYNC_PAGE_SIZE", "100"))
BULK_THRESHOLD_BYTES = int(os.getenv("BULK_THRESHOLD_BYTES", str(1024 * 1024)))
OUTBOX_POLL_SECONDS = float(os.getenv("OUTBOX_POLL_SECONDS", "5"))
OUTBOX_MAX_BACKOFF_SECONDS = float(os.getenv("OUTBOX_MAX_BACKOFF_SECONDS", "300"))

# ─── AI grading ────────────────────────────────────────────────────────────────

GPT_MODEL = os.getenv("GPT_MODEL", "gpt-4o-mini")


def remote_configured() -> bool:
    """True when a remote backend URL and key are both set."""
    return bool(SUPABASE_URL and SUPABASE_KEY)
