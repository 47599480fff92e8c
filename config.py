# config.py
"""
Configuration for the RunwayTwin look engine.
All sensitive values should be set via environment variables.
"""
import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# ============================================================================
# Helper Functions
# ============================================================================
def is_valid_api_key(key: str, min_length: int = 20) -> bool:
    """
    Check if API key looks valid (not a placeholder).

    Args:
        key: The API key to validate
        min_length: Minimum length for a valid key

    Returns:
        True if key appears valid, False if it's a placeholder or invalid
    """
    if not key or len(key) < min_length:
        return False
    # Check for common placeholder patterns
    invalid_patterns = ['your_', 'example', 'placeholder', 'xxx', 'fake', 'test_key']
    return not any(pattern in key.lower() for pattern in invalid_patterns)


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).strip().lower() not in ("false", "0", "no", "")


def _env_list(name: str, default: str = "") -> list:
    raw = os.environ.get(name, default)
    return [part.strip() for part in raw.split(",") if part.strip()]


# ============================================================================
# Defaults
# ============================================================================
DEFAULT_CURRENCY = os.environ.get("DEFAULT_CURRENCY", "EUR")
DEFAULT_COUNTRY = os.environ.get("DEFAULT_COUNTRY", "NL")
DEFAULT_RESULT_LIMIT = int(os.environ.get("DEFAULT_RESULT_LIMIT", "8"))

# Retailers raced for every slot when a plan does not name any
DEFAULT_RETAILER_PRIORITY = _env_list("DEFAULT_RETAILER_PRIORITY", "COS,Zara,& Other Stories")

# ============================================================================
# Assembly Timeouts (seconds)
# ============================================================================
PER_RETAILER_TIMEOUT = float(os.environ.get("PER_RETAILER_TIMEOUT", "1.5"))
PER_SLOT_TIMEOUT = float(os.environ.get("PER_SLOT_TIMEOUT", "4.0"))
GLOBAL_TIMEOUT = float(os.environ.get("GLOBAL_TIMEOUT", "8.0"))
HEARTBEAT_INTERVAL = float(os.environ.get("HEARTBEAT_INTERVAL", "2.0"))

# ============================================================================
# Constraint Relaxation
# ============================================================================
RELAXATION_PRICE_FACTOR = float(os.environ.get("RELAXATION_PRICE_FACTOR", "0.10"))
SAFE_NEUTRAL_COLORS = _env_list("SAFE_NEUTRAL_COLORS", "black,white,grey,beige,navy,cream")
GENERIC_RELAXATION_KEYWORDS = ["classic", "essential", "minimal"]

# ============================================================================
# Infrastructure Configuration
# ============================================================================
REDIS_URL = os.environ.get("REDIS_URL", "redis://localhost:6379/0")
USE_REDIS_JOB_STORE = _env_bool("USE_REDIS_JOB_STORE", "false")
KEY_PREFIX = os.environ.get("KEY_PREFIX", "runwaytwin:")
LOOK_CACHE_TTL = int(os.environ.get("LOOK_CACHE_TTL", "900"))  # 15 minutes
JOB_TTL = int(os.environ.get("JOB_TTL", "86400"))

# ============================================================================
# Web Scraping
# ============================================================================
WEB_SCRAPE_ENABLED = _env_bool("WEB_SCRAPE_ENABLED", "true")
# Optional allowlist: comma-separated domains, e.g. "zalando.nl,cos.com,arket.com"
WEB_SCRAPE_DOMAINS_ALLOWLIST = [d.lower() for d in _env_list("WEB_SCRAPE_DOMAINS_ALLOWLIST")]
USE_READER_PROXY = _env_bool("USE_READER_PROXY", "true")
READER_PROXY_URL = os.environ.get("READER_PROXY_URL", "https://r.jina.ai/")
HTTP_TIMEOUT = float(os.environ.get("HTTP_TIMEOUT", "8.0"))
WEB_PAGES_PER_QUERY = int(os.environ.get("WEB_PAGES_PER_QUERY", "6"))

USER_AGENT = os.environ.get(
    "SCRAPER_USER_AGENT",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)
ACCEPT_LANGUAGE = os.environ.get("ACCEPT_LANGUAGE", "en-US,en;q=0.9,nl;q=0.8")

# ============================================================================
# Affiliate Network APIs
# ============================================================================
AWIN_API_TOKEN = os.environ.get("AWIN_API_TOKEN", "")
AWIN_API_URL = os.environ.get("AWIN_API_URL", "https://api.awin.com/v3")
AWIN_PUBLISHER_ID = os.environ.get("AWIN_PUBLISHER_ID", "")
ENABLE_AWIN = is_valid_api_key(AWIN_API_TOKEN, min_length=16)

# When true, affiliate links are returned untouched
MOCK_AFFILIATES = _env_bool("MOCK_AFFILIATES", "true")
