import os

from dotenv import load_dotenv

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL")

# Managed backend (functions + auth share the project URL and publishable key)
SUPABASE_URL = os.getenv("SUPABASE_URL", "").rstrip("/")
SUPABASE_PUBLISHABLE_KEY = os.getenv("SUPABASE_PUBLISHABLE_KEY", "")
FUNCTIONS_URL = os.getenv("FUNCTIONS_URL", f"{SUPABASE_URL}/functions/v1" if SUPABASE_URL else "")
AUTH_URL = os.getenv("AUTH_URL", f"{SUPABASE_URL}/auth/v1" if SUPABASE_URL else "")

ANALYSIS_FUNCTION = os.getenv("ANALYSIS_FUNCTION", "analyze-orthodontic-image")
ANALYSIS_TIMEOUT_SECONDS = float(os.getenv("ANALYSIS_TIMEOUT_SECONDS", "120"))

MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(20 * 1024 * 1024)))  # 20 MB
PROGRESS_INTERVAL_SECONDS = float(os.getenv("PROGRESS_INTERVAL_SECONDS", "1.2"))

# Idle sessions (and the image they hold) are dropped after this long; 0 disables.
SESSION_TTL_SECONDS = float(os.getenv("SESSION_TTL_SECONDS", "1800"))

# TTF used for report text in PDFs; unset means the latin-1 core font.
PDF_FONT_PATH = os.getenv("PDF_FONT_PATH") or None

USAGE_LOG_TABLE = os.getenv("USAGE_LOG_TABLE", "orthodontic_usage_logs")

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
    if origin.strip()
]

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
