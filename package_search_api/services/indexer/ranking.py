"""
Ranking signals stored on every package document.

Both values are log10 based so that packages spread over several orders of
magnitude end up in a small range usable for sorting and boosting.
"""
import math
from typing import Optional

def _log10_or_zero(value: Optional[float]) -> float:
    if value is None or value <= 0:
        return 0.0
    return math.log10(value)

def _round_half_up(value: float) -> int:
    if value < 0:
        return -int(math.floor(-value + 0.5))
    return int(math.floor(value + 0.5))

def popularity(monthly_downloads: int, github_stars: int) -> int:
    """log10 of monthly downloads plus log10 of GitHub stars, rounded."""
    return _round_half_up(_log10_or_zero(monthly_downloads) + _log10_or_zero(github_stars))

def trendiness(trending_score: Optional[float]) -> float:
    """log10 of the time-decayed trending score, 0 when there is none."""
    return _log10_or_zero(trending_score)
