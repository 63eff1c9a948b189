"""
Night quality scoring for deep-sky imaging.

Every hour of the night gets a weighted 0-100 score built from cloud cover,
seeing, transparency and humidity. The night as a whole is judged on its
longest run of consecutive imageable hours, unless rain indicators veto it.

Scales (lower is better for all inputs):
    - Cloud cover: percent, 0 = clear, 100 = overcast
    - Seeing: arc-seconds, 1" = excellent, 4"+ = poor
    - Transparency: extinction index, 0 = perfect, 25+ = terrible
"""
import datetime
import math
from dataclasses import dataclass, field
from typing import Optional

MIN_WINDOW_HOURS = 3
NOTIFY_MIN_HOURS = 6
NOTIFY_MIN_SCORE = 60
RAIN_HOURS_LIMIT = 3

# Weights for the composite hour score (sum to 1.0)
CLOUD_WEIGHT = 0.50
SEEING_WEIGHT = 0.30
TRANSPARENCY_WEIGHT = 0.15
HUMIDITY_WEIGHT = 0.05


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves go up (2.5 -> 3, not 2)."""
    # Compare the exact fraction; floor(value + 0.5) rounds 0.49999999999999994 up
    rounded = math.floor(value)
    if value - rounded >= 0.5:
        rounded += 1
    return rounded


def score_cloud_cover(cloud_percent: float) -> float:
    """Score cloud cover. Non-linear, heavily penalizes high cover."""
    if cloud_percent >= 70:
        return 0  # Unusable
    if cloud_percent >= 50:
        return 30
    if cloud_percent >= 30:
        return 60
    if cloud_percent >= 15:
        return 80
    return 100 - cloud_percent


def score_seeing(arcsec: float) -> float:
    """Score seeing in arc-seconds (tighter stars score higher)."""
    if arcsec <= 1:
        return 100
    if arcsec <= 1.5:
        return 90
    if arcsec <= 2:
        return 75
    if arcsec <= 2.5:
        return 60
    if arcsec <= 3:
        return 40
    if arcsec <= 4:
        return 20
    return 0


def score_transparency(extinction: float) -> float:
    """Score the transparency/extinction index."""
    if extinction <= 5:
        return 100
    if extinction <= 10:
        return 85
    if extinction <= 15:
        return 65
    if extinction <= 20:
        return 40
    if extinction <= 25:
        return 20
    return 0


def score_humidity(humidity: float) -> float:
    """Score relative humidity. Mostly a dew risk, so the penalty is mild below 80%."""
    if humidity >= 98:
        return 0  # Dew certain
    if humidity >= 90:
        return 50
    if humidity >= 80:
        return 70
    return 100 - humidity * 0.3


def score_hour(hour) -> float:
    """
    Weighted multi-factor score for one hour.

    Clouds 50%, seeing 30%, transparency 15%, humidity 5%.

    Args:
        hour: Anything with cloud_cover, seeing, transparency and humidity attributes

    Returns:
        float: Score in [0, 100], higher is better
    """
    return (score_cloud_cover(hour.cloud_cover) * CLOUD_WEIGHT +
            score_seeing(hour.seeing) * SEEING_WEIGHT +
            score_transparency(hour.transparency) * TRANSPARENCY_WEIGHT +
            score_humidity(hour.humidity) * HUMIDITY_WEIGHT)


def is_hour_imageable(hour) -> bool:
    """Coarse usability gate: thin cloud is tolerated, saturated air is not."""
    return hour.cloud_cover <= 40 and hour.humidity < 98


@dataclass(frozen=True)
class HourlyForecast:
    """One forecast hour. hour_score and is_imageable are derived on construction."""
    hour_offset: int
    local_time: datetime.datetime
    cloud_cover: float
    seeing: float
    transparency: float
    temperature_c: float
    dew_point_c: float
    humidity: float
    hour_score: float = field(init=False)
    is_imageable: bool = field(init=False)

    def __post_init__(self):
        object.__setattr__(self, 'hour_score', score_hour(self))
        object.__setattr__(self, 'is_imageable', is_hour_imageable(self))


@dataclass(frozen=True)
class ImagingWindow:
    start_hour: datetime.datetime
    end_hour: datetime.datetime
    length: int
    avg_quality: int


@dataclass(frozen=True)
class NightAnalysis:
    hours: list
    avg_cloud_cover: float
    avg_transparency: float
    min_temp: float
    max_humidity: float
    best_window: Optional[ImagingWindow]
    score: int
    should_notify: bool
    reason: str
    has_deal_breaker: bool
    deal_breaker_reason: str


def dew_point_depression(hour) -> float:
    """Temperature minus dew point. Small values mean the air is near saturation."""
    return hour.temperature_c - hour.dew_point_c


def is_rain_likely(hour) -> bool:
    if hour.cloud_cover >= 100:
        return True
    # High clouds with near-saturated air
    if hour.cloud_cover >= 80 and dew_point_depression(hour) < 3:
        return True
    # Drizzle
    if hour.cloud_cover >= 70 and hour.humidity > 95:
        return True
    return False


def find_deal_breaker(hours: list[HourlyForecast]) -> tuple[bool, str]:
    """
    Scan every hour of the night for rain indicators.

    Args:
        hours: Full hour sequence, not just the best window

    Returns:
        tuple: (failed, reason) where reason is empty when nothing was found
    """
    rain_hours = sum(1 for hour in hours if is_rain_likely(hour))
    if rain_hours >= RAIN_HOURS_LIMIT:
        return True, f"Rain likely ({rain_hours} hours with rain indicators)"
    return False, ""


def find_best_window(hours: list[HourlyForecast]) -> Optional[ImagingWindow]:
    """
    Find the longest run of consecutive imageable hours, quality breaking ties.

    Consecutive means adjacent in the list; hour offsets are not inspected.
    Runs shorter than MIN_WINDOW_HOURS are discarded.
    """
    windows = []
    current_start = None

    # One extra iteration acts as a non-imageable sentinel that closes a trailing run
    for i in range(len(hours) + 1):
        imageable = i < len(hours) and hours[i].is_imageable

        if imageable and current_start is None:
            current_start = i
        elif not imageable and current_start is not None:
            block = hours[current_start:i]
            if len(block) >= MIN_WINDOW_HOURS:
                avg_quality = sum(h.hour_score for h in block) / len(block)
                windows.append({'hours': block, 'length': len(block), 'avg_quality': avg_quality})
            current_start = None

    if not windows:
        return None

    # Stable sort: the earliest window wins a full tie
    windows.sort(key=lambda w: (-w['length'], -w['avg_quality']))
    best = windows[0]

    return ImagingWindow(
        start_hour=best['hours'][0].local_time,
        end_hour=best['hours'][-1].local_time,
        length=best['length'],
        avg_quality=round_half_up(best['avg_quality']),
    )


def length_score(length: int) -> float:
    """Non-linear reward for window length, 8+ hours is full marks."""
    if length >= 8:
        return 100
    if length >= 6:
        return 80 + (length - 6) * 10
    if length >= 4:
        return 50 + (length - 4) * 15
    return length * 15


def calculate_final_score(best_window: Optional[ImagingWindow]) -> tuple[int, bool, str]:
    """
    Turn the best window into a final score and go/no-go decision.

    Notifying needs NOTIFY_MIN_HOURS consecutive hours and a score of at
    least NOTIFY_MIN_SCORE.

    Returns:
        tuple: (score, should_notify, reason)
    """
    if best_window is None:
        return 0, False, "No consecutive clear hours found"

    length = best_window.length
    avg_quality = best_window.avg_quality

    final_score = round_half_up(length_score(length) * 0.60 + avg_quality * 0.40)
    should_notify = length >= NOTIFY_MIN_HOURS and final_score >= NOTIFY_MIN_SCORE

    if should_notify:
        reason = f"{length} consecutive clear hours with {avg_quality}% quality"
    elif length < NOTIFY_MIN_HOURS:
        reason = f"Only {length} consecutive hours (need {NOTIFY_MIN_HOURS}+)"
    else:
        reason = f"Quality too low: {final_score}/100"

    return final_score, should_notify, reason


def analyze_night(hours: list[HourlyForecast]) -> Optional[NightAnalysis]:
    """
    Analyze a night of hourly forecasts.

    Args:
        hours: Hours of the night in time order (usually astronomical night only)

    Returns:
        NightAnalysis, or None when there are no hours to analyze
    """
    if not hours:
        return None

    has_deal_breaker, deal_breaker_reason = find_deal_breaker(hours)
    best_window = find_best_window(hours)

    if has_deal_breaker:
        score, should_notify, reason = 0, False, deal_breaker_reason
    else:
        score, should_notify, reason = calculate_final_score(best_window)

    return NightAnalysis(
        hours=hours,
        avg_cloud_cover=sum(h.cloud_cover for h in hours) / len(hours),
        avg_transparency=sum(h.transparency for h in hours) / len(hours),
        min_temp=min(h.temperature_c for h in hours),
        max_humidity=max(h.humidity for h in hours),
        best_window=best_window,
        score=score,
        should_notify=should_notify,
        reason=reason,
        has_deal_breaker=has_deal_breaker,
        deal_breaker_reason=deal_breaker_reason,
    )


def get_rating(score: float) -> str:
    if score >= 80:
        return "Excellent"
    if score >= 60:
        return "Good"
    if score >= 40:
        return "Fair"
    return "Poor"
