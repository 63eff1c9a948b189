"""Telegram message formatting (MarkdownV2)."""
import re

from night_quality import get_rating, round_half_up
from telegram_client import get_astrospheric_url, get_clear_outside_url

_MARKDOWN_V2_SPECIAL = re.compile(r'([_*\[\]()~`>#+\-=|{}.!\\])')


def escape_markdown_v2(text: str) -> str:
    return _MARKDOWN_V2_SPECIAL.sub(r'\\\1', text)


def format_time(dt) -> str:
    """Format as '9:00 PM' (no leading zero on the hour)."""
    return dt.strftime('%I:%M %p').lstrip('0')


def describe_cloud_cover(cloud_percent: float) -> str:
    if cloud_percent < 15:
        return "Clear"
    if cloud_percent < 30:
        return "Mostly clear"
    if cloud_percent < 50:
        return "Partly cloudy"
    return "Cloudy"


def get_rating_emoji(score: float) -> str:
    if score >= 80:
        return "🟢"
    if score >= 60:
        return "🟡"
    if score >= 40:
        return "🟠"
    return "🔴"


def format_night_summary(night) -> str:
    """
    Summarize a NightAnalysis in a few MarkdownV2 lines.

    Examples:
        *Clear 9:00 PM \\- 4:00 AM* \\(8 hours\\)
        🟢 Excellent \\(92/100\\)
        ☁️ Clear \\(~6%\\) \\| 🌡️ Low 4°C
    """
    lines = []

    if night.best_window:
        window = night.best_window
        start = escape_markdown_v2(format_time(window.start_hour))
        end = escape_markdown_v2(format_time(window.end_hour))
        lines.append(f"*Clear {start} \\- {end}* \\({window.length} hours\\)")

    lines.append(f"{get_rating_emoji(night.score)} {get_rating(night.score)} \\({night.score}/100\\)")

    cloud_desc = escape_markdown_v2(describe_cloud_cover(night.avg_cloud_cover))
    avg_cloud = round_half_up(night.avg_cloud_cover)
    min_temp = escape_markdown_v2(str(round_half_up(night.min_temp)))
    lines.append(f"☁️ {cloud_desc} \\(~{avg_cloud}%\\) \\| 🌡️ Low {min_temp}°C")

    if night.has_deal_breaker:
        lines.append(f"⚠️ {escape_markdown_v2(night.deal_breaker_reason)}")

    return "\n".join(lines)


def build_notification(night, latitude, longitude) -> str:
    lines = [
        "🔭 *Tonight looks good for imaging\\!*",
        "",
        format_night_summary(night),
        "",
        f"[Astrospheric]({get_astrospheric_url(latitude, longitude)}) \\| "
        f"[Clear Outside]({get_clear_outside_url(latitude, longitude)})",
    ]
    return "\n".join(lines)


def format_status(night) -> str:
    return f"Tonight: {night.reason} (score: {night.score}/100)"
