"""
Serverless entry point for review-pilot.

Exposes the ASGI application as `app` for platforms that import a module
rather than running `review-pilot` as a process.
"""
import sys
import os

ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

# no multiprocess metrics directory in a short-lived function
os.environ.setdefault("PROMETHEUS_ENABLED", "false")

# only /tmp is writable
if not os.environ.get("DATABASE_URL"):
    os.environ["DATABASE_URL"] = "sqlite:////tmp/review_pilot.db"

from dotenv import load_dotenv
load_dotenv(os.path.join(ROOT, ".env"), override=True)

from reviewpilot.app import app  # noqa: E402,F401
