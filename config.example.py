# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a local .env file).
Do NOT commit real secrets, in particular LC_SHARE_SECRET and LC_SUPABASE_KEY.
Keep them in .env (local, gitignored).

This file exists to make the repo self-documenting even without opening .env.
"""

ENV_VARS = {
    # App / logging
    "LC_APP_NAME": "App display name (default: learning-companion).",
    "LC_LOG_LEVEL": "Console logging level (default: INFO). The log file always gets DEBUG.",
    # Front ends
    "LC_CONSOLE_ENABLED": "Enable the console REPL (true/false, default: true).",
    "LC_WEB_ENABLED": "Serve the share endpoints over HTTP (true/false, default: false).",
    "LC_WEB_HOST": "HTTP bind address (default: 127.0.0.1).",
    "LC_WEB_PORT": "HTTP port (default: 8000).",
    # Remote collection
    "LC_REMOTE_BACKEND": "'sqlite' (local shared database) or 'rest' (Supabase/PostgREST).",
    "LC_SUPABASE_URL": "Project URL, required for the rest backend.",
    "LC_SUPABASE_KEY": "Project API key, required for the rest backend.",
    "LC_HTTP_TIMEOUT_SECONDS": "Timeout for remote HTTP calls (default: 10).",
    "LC_POLL_INTERVAL_SECONDS": "Live-change polling interval for the rest backend (default: 5).",
    # Sync
    "LC_RETRY_INTERVAL_SECONDS": "Base interval of the background queue replay (default: 15).",
    "LC_RETRY_QUEUE_MAX": "Max queued offline writes. Beyond it, updates are folded per task, then the oldest is dropped (default: 500).",
    # Sharing
    "LC_SHARE_SECRET": "HMAC key for share tokens (32+ random chars). Sharing is off when unset.",
    "LC_SHARE_TTL_DAYS": "Share link lifetime in days (default: 30).",
    "LC_PUBLIC_BASE_URL": "Base of generated share links (default: http://localhost:3000).",
    # Identity
    "LC_USER_ID": "Signed-in user for local runs (default: local-user).",
    "LC_ACCESS_TOKEN": "Access token of that user; also accepted by POST /share-token.",
    # Paths (gitignored)
    "LC_DATA_DIR": "Local data directory (default: .local/learning_companion).",
    "LC_TASKS_DB_PATH": "SQLite task database (default: <data_dir>/tasks.sqlite3).",
    "LC_CACHE_PATH": "Offline snapshot + retry queue cache (default: <data_dir>/cache.json).",
}
