"""
grading.py — Performance bands, curriculum levels and the subject catalog.

Two band schemes are in use and they are kept deliberately separate:

  Term status (aggregation, submission, reports, coordinator views):
      >= 60  Doing Well
      40-59  Needs Support
      < 40   At Risk
      (no valid subjects)  No Data

  Performance level (per-subject trend charts only):
      >= 80  excellent
      60-79  good
      40-59  needs-improvement
      < 40   at-risk

Every average that leaves the engine goes through round_percentage(), which
rounds half up to a whole percentage.
"""

import math
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Optional


# ── Term status bands (min_average, label) ordered high to low ──────

DOING_WELL = "Doing Well"
NEEDS_SUPPORT = "Needs Support"
AT_RISK = "At Risk"
NO_DATA = "No Data"

TERM_STATUS_BANDS = [
    (60.0, DOING_WELL),
    (40.0, NEEDS_SUPPORT),
    (0.0, AT_RISK),
]

STATUS_ORDER = [DOING_WELL, NEEDS_SUPPORT, AT_RISK, NO_DATA]

# ── Per-subject breakdown categories ────────────────────────────────

BREAKDOWN_CATEGORIES = {
    DOING_WELL: "doing_well",
    NEEDS_SUPPORT: "needs_support",
    AT_RISK: "at_risk",
}
MISSING_DATA = "missing_data"

# ── Trend/chart performance levels (min_value, label) ───────────────

PERFORMANCE_LEVELS = [
    (80.0, "excellent"),
    (60.0, "good"),
    (40.0, "needs-improvement"),
    (0.0, "at-risk"),
]

TREND_THRESHOLD = 5.0

# ── Curriculum levels: level -> (min %, max %) ──────────────────────

LEVEL_BANDS = {
    7: (80, 100),
    6: (70, 79),
    5: (60, 69),
    4: (50, 59),
    3: (40, 49),
    2: (30, 39),
    1: (0, 29),
}

# ── Catalog ─────────────────────────────────────────────────────────

TERMS = [1, 2, 3, 4]
GRADE_OPTIONS = ["10", "11", "12"]

SUBJECT_CATALOG = [
    "Mathematics",
    "Physical Sciences",
    "Life Sciences",
    "Geography",
    "History",
    "English Home Language",
    "Afrikaans First Additional Language",
    "Business Studies",
    "Economics",
    "Accounting",
    "Computer Applications Technology",
    "Information Technology",
    "Life Orientation",
    "Consumer Studies",
    "Tourism",
    "Afrikaans Home Language",
    "English First Additional Language",
    "Mathematical Literacy",
    "Engineering Graphics and Design",
]

_CATALOG_LOOKUP = {name.casefold(): name for name in SUBJECT_CATALOG}


def round_percentage(value: Optional[float]) -> Optional[int]:
    """Round half up to a whole percentage (59.5 -> 60, 60.49 -> 60)."""
    if value is None:
        return None
    try:
        v = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(v) or math.isinf(v):
        return None
    # Trim float noise (e.g. 59.4999999999) before the half-up step.
    d = Decimal(repr(round(v, 6)))
    return int(d.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def get_term_status(average: Optional[float]) -> str:
    """Map a term (or overall) average to its status label."""
    if average is None:
        return NO_DATA
    try:
        value = float(average)
    except (TypeError, ValueError):
        return NO_DATA
    if math.isnan(value):
        return NO_DATA
    for min_avg, label in TERM_STATUS_BANDS:
        if value >= min_avg:
            return label
    return AT_RISK


def classify_subject_percentage(percentage: Optional[float]) -> str:
    """Breakdown category for one subject's final percentage."""
    if percentage is None:
        return MISSING_DATA
    return BREAKDOWN_CATEGORIES[get_term_status(percentage)]


def get_performance_level(value: Optional[float]) -> Optional[str]:
    """Four-band level used by the subject trend charts."""
    if value is None:
        return None
    for min_value, label in PERFORMANCE_LEVELS:
        if value >= min_value:
            return label
    return "at-risk"


def classify_trend(delta: float) -> str:
    if delta > TREND_THRESHOLD:
        return "improvement"
    if delta < -TREND_THRESHOLD:
        return "decline"
    return "stable"


def get_level_band(level: Any) -> Optional[Dict[str, Any]]:
    try:
        level_num = int(level)
    except (TypeError, ValueError):
        return None
    band = LEVEL_BANDS.get(level_num)
    if band is None:
        return None
    low, high = band
    return {"level": level_num, "min": low, "max": high, "label": f"{low}-{high}%"}


def check_level_consistency(level: Any, percentage: Optional[float]) -> Optional[str]:
    """
    Soft check that a percentage falls inside its level's band.
    Returns a warning message, or None when consistent or not checkable.
    """
    band = get_level_band(level)
    if band is None or percentage is None:
        return None
    # Bands are whole-number ranges; 79.5 still belongs to level 6.
    if band["min"] <= percentage < band["max"] + 1:
        return None
    return f"For level {band['level']}, percentage must be {band['label']}"


def canonical_subject_name(name: Any) -> str:
    """Collapse whitespace and snap to the catalog spelling when one matches."""
    collapsed = " ".join(str(name or "").split())
    return _CATALOG_LOOKUP.get(collapsed.casefold(), collapsed)


def get_all_band_thresholds() -> Dict[str, List[Dict[str, Any]]]:
    """Full band tables for legends and API metadata."""
    def _table(bands):
        rows = []
        for idx, (min_value, label) in enumerate(bands):
            max_value = 100.0 if idx == 0 else bands[idx - 1][0] - 0.01
            rows.append({"min": min_value, "max": round(max_value, 2), "label": label})
        return rows

    return {
        "term_status": _table(TERM_STATUS_BANDS),
        "performance_level": _table(PERFORMANCE_LEVELS),
        "levels": [get_level_band(level) for level in sorted(LEVEL_BANDS, reverse=True)],
    }
