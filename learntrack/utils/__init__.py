"""Utility modules for learntrack."""

from learntrack.utils.percent import calculate_percent
from learntrack.utils.time import ensure_utc_aware, utc_now


__all__ = ["calculate_percent", "ensure_utc_aware", "utc_now"]
