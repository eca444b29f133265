"""
Live tail configuration - environment driven, read once at import.
Category mapping, page limits, poller defaults and lifecycle (TTL) defaults.
"""

import os
from pathlib import Path
from types import MappingProxyType
from typing import Dict, List, Mapping

# Database path configuration
DB_PATH = os.getenv("LIVETAIL_DB_PATH", "./data/livetail.db")

DEBUG = os.getenv("LIVETAIL_DEBUG", "true").lower() == "true"

# Category -> physical collection (table) mapping
DEFAULT_CATEGORIES = {
    "infrastructure": "infrastructure_events",
    "business": "business_events",
    "consumer": "consumer_events",
    "federal": "federal_events",
    "emerging_tech": "emerging_tech_events",
}
CATEGORY_MAPPING = os.getenv("LIVETAIL_CATEGORIES", "")  # "cat:table,cat2:table2"

# Tail query page sizes (server side)
DEFAULT_PAGE_SIZE = int(os.getenv("LIVETAIL_DEFAULT_PAGE_SIZE", "200"))
MAX_PAGE_SIZE = int(os.getenv("LIVETAIL_MAX_PAGE_SIZE", "1000"))

# Feed poller defaults (client side)
POLL_INTERVAL_SEC = float(os.getenv("LIVETAIL_POLL_INTERVAL_SEC", "2.0"))
BUFFER_CAP = int(os.getenv("LIVETAIL_BUFFER_CAP", "8000"))
HTTP_TIMEOUT_SEC = float(os.getenv("LIVETAIL_HTTP_TIMEOUT_SEC", "10.0"))

# Lifecycle cache (synthetic TTL) - default enabled
LIFECYCLE_ENABLED = os.getenv("LIVETAIL_LIFECYCLE_ENABLED", "true").lower() == "true"
TTL_MIN_SEC = float(os.getenv("LIVETAIL_TTL_MIN_SEC", "10"))
TTL_MAX_SEC = float(os.getenv("LIVETAIL_TTL_MAX_SEC", "60"))
PRUNE_INTERVAL_SEC = float(os.getenv("LIVETAIL_PRUNE_INTERVAL_SEC", "2"))
LIFECYCLE_MAX_ENTRIES = int(os.getenv("LIVETAIL_LIFECYCLE_MAX_ENTRIES", "80000"))

VERSION = "0.1.0"


def parse_categories(text: str) -> Dict[str, str]:
    """
    Parse a "category:collection" comma separated list.

    An empty string yields the default mapping. Entries without a colon map the
    category to "<category>_events".
    """
    if not text or not text.strip():
        return dict(DEFAULT_CATEGORIES)

    mapping = {}
    for part in text.split(","):
        part = part.strip()
        if not part:
            continue
        if ":" in part:
            name, collection = part.split(":", 1)
        else:
            name, collection = part, f"{part}_events"
        mapping[name.strip()] = collection.strip()
    return mapping


def get_category_map() -> Mapping[str, str]:
    """Return the configured category mapping as a read-only view."""
    return MappingProxyType(parse_categories(CATEGORY_MAPPING))


def debug_enabled():
    """Check if debug mode is enabled."""
    return os.getenv("LIVETAIL_DEBUG", "true").lower() == "true"


def is_lifecycle_enabled():
    """Check if the lifecycle (TTL) cache is enabled by default for new feeds."""
    return LIFECYCLE_ENABLED


def ensure_db_directory():
    """Ensure the database directory exists."""
    Path(DB_PATH).parent.mkdir(parents=True, exist_ok=True)


def validate_config() -> List[str]:
    """Validate configuration and return any issues."""
    issues = []

    if DEFAULT_PAGE_SIZE < 1:
        issues.append("LIVETAIL_DEFAULT_PAGE_SIZE must be >= 1")

    if MAX_PAGE_SIZE < 1:
        issues.append("LIVETAIL_MAX_PAGE_SIZE must be >= 1")

    if POLL_INTERVAL_SEC <= 0:
        issues.append("LIVETAIL_POLL_INTERVAL_SEC must be > 0")

    if BUFFER_CAP < 1:
        issues.append("LIVETAIL_BUFFER_CAP must be >= 1")

    if TTL_MIN_SEC < 0 or TTL_MAX_SEC < TTL_MIN_SEC:
        issues.append("LIVETAIL_TTL_MIN_SEC/LIVETAIL_TTL_MAX_SEC must satisfy 0 <= min <= max")

    if PRUNE_INTERVAL_SEC <= 0:
        issues.append("LIVETAIL_PRUNE_INTERVAL_SEC must be > 0")

    if LIFECYCLE_MAX_ENTRIES < 1:
        issues.append("LIVETAIL_LIFECYCLE_MAX_ENTRIES must be >= 1")

    for name, collection in parse_categories(CATEGORY_MAPPING).items():
        if not name or not collection.replace("_", "").isalnum():
            issues.append(f"Invalid category mapping: {name}:{collection}")

    return issues
