"""Typography preferences: a value object normalized on every read and write."""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, replace
from typing import Any, Mapping

# name -> (min, max, integer)
RANGES: dict[str, tuple[float, float, bool]] = {
    "para_spacing": (0.2, 4.0, False),
    "letter_spacing": (0.0, 5.0, False),
    "line_height": (1.0, 3.5, False),
    "page_width": (400, 2000, True),
    "page_padding": (10, 150, True),
}

LAYOUT_FIELDS = frozenset({"page_width", "page_padding", "line_height", "para_spacing", "letter_spacing"})


def clamp(value: Any, lo: float, hi: float, fallback: float) -> float:
    try:
        num = float(value)
    except (TypeError, ValueError):
        return fallback
    if not math.isfinite(num):
        return fallback
    return min(max(num, lo), hi)


@dataclass(frozen=True)
class TypographyPrefs:
    para_spacing: float = 1.0
    letter_spacing: float = 0.2
    line_height: float = 1.8
    page_width: int = 800
    page_padding: int = 40
    progress_bar_enabled: bool = True

    @property
    def vertical_padding(self) -> int:
        return compute_vertical_padding(self.page_padding)

    def normalized(self) -> TypographyPrefs:
        return normalize_prefs(asdict(self))

    def updated(self, **changes: Any) -> TypographyPrefs:
        return normalize_prefs({**asdict(self), **changes})

    def to_dict(self) -> dict[str, Any]:
        return asdict(self.normalized())

    def affects_layout(self, other: TypographyPrefs) -> bool:
        return any(getattr(self, f) != getattr(other, f) for f in LAYOUT_FIELDS)


DEFAULT_PREFS = TypographyPrefs()


def normalize_prefs(raw: Any = None) -> TypographyPrefs:
    """Clamp every field into its documented range; junk falls back to defaults."""
    merged: dict[str, Any] = asdict(DEFAULT_PREFS)
    if isinstance(raw, Mapping):
        merged.update({k: v for k, v in raw.items() if k in merged})

    values: dict[str, Any] = {}
    for name, (lo, hi, integer) in RANGES.items():
        value = clamp(merged[name], lo, hi, getattr(DEFAULT_PREFS, name))
        values[name] = int(round(value)) if integer else value
    values["progress_bar_enabled"] = merged["progress_bar_enabled"] is not False
    return replace(DEFAULT_PREFS, **values)


def compute_vertical_padding(horizontal: Any) -> int:
    try:
        value = float(horizontal)
    except (TypeError, ValueError):
        value = math.nan
    if not math.isfinite(value):
        return round(DEFAULT_PREFS.page_padding * 0.75)
    return max(8, round(value * 0.75))
