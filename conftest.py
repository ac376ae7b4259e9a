import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Provide sane defaults for required settings so tests can import the app without a .env
os.environ.setdefault("REDIS_URL", "redis://127.0.0.1:6379/0")
os.environ.setdefault("LIMITER_STORAGE_URI", "memory://")
os.environ.setdefault("GEMINI_API_KEY", "")
