# reviewpilot/config.py
"""
Process-wide settings, read once from the environment at import time.

Env vars:
- GEMINI_API_KEY, GEMINI_MODEL, GEMINI_BASE_URL, MOCK_GEMINI
- WORDPRESS_CLIENT_ID, WORDPRESS_CLIENT_SECRET, WORDPRESS_REDIRECT_URI
- WORDPRESS_AUTHORIZE_URL, WORDPRESS_TOKEN_URL, WORDPRESS_API_BASE, WORDPRESS_OAUTH_SCOPE
- PLUGIN_NAMESPACE (REST namespace of the deployer plugin on target sites)
- FRONTEND_URL, HOST, PORT, CORS_ORIGINS

Modules read these as `config.NAME` at call time so tests can monkeypatch them.
"""

import os


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


# --- Generative language API
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY", "").strip()
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-flash-latest")
GEMINI_BASE_URL = os.getenv("GEMINI_BASE_URL", "https://generativelanguage.googleapis.com/v1beta").rstrip("/")
MOCK_GEMINI = _flag("MOCK_GEMINI", "false")

# --- WordPress.com OAuth
WORDPRESS_CLIENT_ID = os.getenv("WORDPRESS_CLIENT_ID", "")
WORDPRESS_CLIENT_SECRET = os.getenv("WORDPRESS_CLIENT_SECRET", "")
WORDPRESS_REDIRECT_URI = os.getenv("WORDPRESS_REDIRECT_URI", "")
WORDPRESS_AUTHORIZE_URL = os.getenv("WORDPRESS_AUTHORIZE_URL", "https://public-api.wordpress.com/oauth2/authorize")
WORDPRESS_TOKEN_URL = os.getenv("WORDPRESS_TOKEN_URL", "https://public-api.wordpress.com/oauth2/token")
WORDPRESS_API_BASE = os.getenv("WORDPRESS_API_BASE", "https://public-api.wordpress.com/rest/v1.1").rstrip("/")
WORDPRESS_OAUTH_SCOPE = os.getenv("WORDPRESS_OAUTH_SCOPE", "global")

# --- Deployer plugin installed on each target site
PLUGIN_NAMESPACE = "/" + os.getenv("PLUGIN_NAMESPACE", "/wp-json/ai-code-deployer/v1").strip("/")
API_KEY_HEADER = "X-API-Key"

# --- Outbound timeouts (seconds); None means no timeout
VERIFY_TIMEOUT = 5.0
DEPLOY_TIMEOUT = 10.0
OAUTH_TIMEOUT = 15.0
GEMINI_TIMEOUT = None

# --- Server
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000").rstrip("/")
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "5000"))
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
