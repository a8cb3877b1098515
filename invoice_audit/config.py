"""
Configuration constants and enums for the Invoice Audit Service.
"""

import logging
import os
from enum import Enum
from typing import Final


# ============================================================================
# Enums
# ============================================================================

class DetectionMode(str, Enum):
    """Which statistical signal decides whether a value is a discrepancy."""
    PERCENTAGE = "percentage"
    STDDEV = "stddev"
    BOTH = "both"


class Severity(str, Enum):
    """How far a flagged value exceeds its threshold."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class FindingType(str, Enum):
    """What a discrepancy finding was compared against."""
    LINE_ITEM = "line_item"
    TOTAL = "total"


# ============================================================================
# History Storage
# ============================================================================

HISTORY_FILE: Final[str] = os.getenv("HISTORY_FILE", "data/invoice_history.json")
REPORTS_DIR: Final[str] = os.getenv("REPORTS_DIR", "reports")

# Vendor bucket used when an invoice has no recognisable vendor line
UNKNOWN_VENDOR: Final[str] = "Unknown"


# ============================================================================
# Detection Defaults
# ============================================================================

def _env_float(name: str, default: float) -> float:
    try:
        value = float(os.getenv(name, str(default)))
    except ValueError:
        return default
    return value if value > 0 else default


def _env_int(name: str, default: int) -> int:
    try:
        value = int(os.getenv(name, str(default)))
    except ValueError:
        return default
    return value if value >= 1 else default


def _env_mode(name: str, default: DetectionMode) -> DetectionMode:
    try:
        return DetectionMode(os.getenv(name, default.value).lower())
    except ValueError:
        return default


# Relative deviation from the historical mean (0.15 = 15%)
DEFAULT_PERCENTAGE_THRESHOLD: Final[float] = _env_float("PERCENTAGE_THRESHOLD", 0.15)

# Deviation measured in historical standard deviations
DEFAULT_STD_DEV_THRESHOLD: Final[float] = _env_float("STD_DEV_THRESHOLD", 2.0)

DEFAULT_DETECTION_MODE: Final[DetectionMode] = _env_mode("DETECTION_MODE", DetectionMode.BOTH)

# Historical samples required before an item or vendor is compared at all
DEFAULT_MIN_SAMPLES: Final[int] = _env_int("MIN_SAMPLES", 3)


# ============================================================================
# API Configuration
# ============================================================================

API_HOST: Final[str] = os.getenv("API_HOST", "0.0.0.0")
API_PORT: Final[int] = int(os.getenv("API_PORT", "8000"))
MAX_UPLOAD_SIZE_MB: Final[int] = int(os.getenv("MAX_UPLOAD_SIZE_MB", "50"))


# ============================================================================
# Logging Configuration
# ============================================================================

LOG_LEVEL: Final[str] = os.getenv("LOG_LEVEL", "INFO")

def setup_logging() -> logging.Logger:
    """Configure and return the application logger."""
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    return logging.getLogger("invoice_audit")


logger = setup_logging()
