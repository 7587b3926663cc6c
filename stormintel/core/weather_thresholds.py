"""
Hail severity classification and storm text parsing.

Severity labels are used for timeline/report labeling only; they never feed
DOL selection. All cut-offs are inclusive.
"""

import re
from typing import Dict, Optional

from stormintel.core.config import HailSeverityThresholds

KNOTS_TO_MPH = 1.15078


class WeatherThresholds:
    """Hail descriptors and storm text parsing."""

    # Hail size descriptors and their corresponding sizes (inches)
    HAIL_SIZE_DESCRIPTORS: Dict[str, float] = {
        "pea": 0.25,
        "marble": 0.5,
        "penny": 0.75,
        "nickel": 0.88,
        "quarter": 1.0,
        "half dollar": 1.25,
        "ping pong ball": 1.5,
        "walnut": 1.5,
        "golf ball": 1.75,
        "hen egg": 2.0,
        "tennis ball": 2.5,
        "baseball": 2.75,
        "tea cup": 3.0,
        "softball": 4.0,
        "grapefruit": 4.5,
    }

    @classmethod
    def get_hail_descriptor(cls, size_inches: float) -> str:
        """
        Get the best descriptor for a hail size.

        Args:
            size_inches: Hail size in inches

        Returns:
            Descriptor string (e.g., "golf ball", "quarter")
        """
        closest_descriptor = "unknown"
        min_diff = float("inf")

        for descriptor, size in cls.HAIL_SIZE_DESCRIPTORS.items():
            diff = abs(size - size_inches)
            if diff < min_diff:
                min_diff = diff
                closest_descriptor = descriptor

        return closest_descriptor

    @classmethod
    def parse_hail_size_from_text(cls, text: Optional[str]) -> Optional[float]:
        """
        Parse hail size from alert text.

        Numeric sizes ("1.75 inch hail") win over descriptors ("quarter size hail").

        Returns:
            Hail size in inches, or None if not found
        """
        if not text or "hail" not in text.lower():
            return None
        text_lower = text.lower()

        match = re.search(r"(\d+(?:\.\d+)?)\s*(?:inch|\")", text_lower)
        if match:
            return float(match.group(1))

        for descriptor, size in cls.HAIL_SIZE_DESCRIPTORS.items():
            if f"{descriptor} size" in text_lower:
                return size

        return None

    @classmethod
    def parse_wind_speed_from_text(cls, text: Optional[str]) -> Optional[float]:
        """
        Parse wind speed from alert text.

        Returns:
            Wind speed in mph, or None if not found
        """
        if not text:
            return None
        text_lower = text.lower()

        match = re.search(r"(\d+)\s*(?:mph|miles?\s*per\s*hour)", text_lower)
        if match:
            return float(match.group(1))

        match = re.search(r"(\d+)\s*(?:knots?|kt\b)", text_lower)
        if match:
            return round(float(match.group(1)) * KNOTS_TO_MPH, 1)

        return None


def classify_severity(
    magnitude: Optional[float],
    distance_miles: float,
    thresholds: Optional[HailSeverityThresholds] = None,
) -> str:
    """
    Classify a hail report by size and distance from the property.

    Args:
        magnitude: Hail size in inches
        distance_miles: Distance from the property in miles
        thresholds: Cut-offs; defaults to the documented values

    Returns:
        "severe", "moderate", "minor" or "trace"
    """
    t = thresholds or HailSeverityThresholds()
    size = magnitude or 0.0

    if size >= t.severe_min_inches and distance_miles <= t.severe_max_miles:
        return "severe"
    if size >= t.moderate_min_inches and distance_miles <= t.moderate_max_miles:
        return "moderate"
    if size >= t.minor_min_inches and distance_miles <= t.minor_max_miles:
        return "minor"
    return "trace"


__all__ = ["WeatherThresholds", "classify_severity"]
