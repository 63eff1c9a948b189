import sys
import json
import time
import logging
import argparse
import datetime
import dataclasses
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, ValidationError, field_validator

from astrospheric import AstrosphericError, NoDataError, fetch_forecast, parse_hourly_forecasts, parse_start_time
from chart import create_night_chart
from failure_log import FailureLogThrottle
from messages import build_notification, format_status, format_time
from night_quality import analyze_night, get_rating
from night_window import get_astronomical_night, get_tonight_hours
from telegram_client import (
    TelegramError,
    get_clear_outside_image_url,
    send_message,
    send_photo,
    send_photo_bytes,
)

logger = logging.getLogger(__name__)


# Default values for Settings fields that need them when empty strings are passed
_SETTINGS_FIELD_DEFAULTS = {
    'send_chart': True,
    'watch_interval_minutes': 60,
    'request_timeout_seconds': 30.0,
    'failure_log_cooldown_seconds': 60.0,
}


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding='utf-8')

    astrospheric_api_key: Optional[str] = Field(None, description="Astrospheric Pro API key")
    telegram_bot_token: Optional[str] = Field(None, description="Telegram bot token")
    telegram_chat_id: Optional[str] = Field(None, description="Telegram chat to notify")
    latitude: Optional[float] = Field(None, ge=-90, le=90, description="Latitude of the imaging site")
    longitude: Optional[float] = Field(None, ge=-180, le=180, description="Longitude of the imaging site")
    send_chart: bool = Field(True, description="Attach an hourly score chart (else the Clear Outside image)")
    watch_interval_minutes: int = Field(60, ge=1, le=1440, description="Minutes between checks in --watch mode")
    request_timeout_seconds: float = Field(30.0, gt=0, description="HTTP timeout for API calls")
    failure_log_cooldown_seconds: float = Field(60.0, ge=0, description="Minimum seconds between repeated failure logs")

    # Normalize empty strings to None for optional string fields
    @field_validator('astrospheric_api_key', 'telegram_bot_token', 'telegram_chat_id', mode='before')
    @classmethod
    def empty_str_to_none(cls, v):
        if v == '':
            return None
        return v

    # Normalize empty strings to None for optional float fields
    @field_validator('latitude', 'longitude', mode='before')
    @classmethod
    def empty_str_to_none_float(cls, v):
        if v == '':
            return None
        return v

    # Normalize empty strings to default for required fields
    @field_validator('send_chart', 'watch_interval_minutes', 'request_timeout_seconds',
                     'failure_log_cooldown_seconds', mode='before')
    @classmethod
    def empty_str_to_default(cls, v, info):
        if v == '':
            return _SETTINGS_FIELD_DEFAULTS.get(info.field_name)
        return v


class ConfigError(Exception):
    """Raised when the configuration cannot be used for a check."""
    pass


class LocationConfigError(ConfigError):
    """Raised when location configuration is invalid."""
    pass


def resolve_location(settings_obj=None):
    """
    Make sure both coordinates are configured.

    Raises:
        LocationConfigError: If latitude or longitude is missing.
    """
    if settings_obj is None:
        settings_obj = settings

    if settings_obj.latitude is not None and settings_obj.longitude is not None:
        return settings_obj.latitude, settings_obj.longitude

    raise LocationConfigError("No valid location found. Set both LATITUDE and LONGITUDE.")


def validate_settings(settings_obj=None):
    if settings_obj is None:
        settings_obj = settings

    resolve_location(settings_obj)
    if not settings_obj.astrospheric_api_key:
        raise ConfigError("ASTROSPHERIC_API_KEY is required to fetch the forecast.")


try:
    settings = Settings()
except ValidationError as e:
    print("Configuration Error:")
    print(e)
    sys.exit(1)


def analyze_tonight(settings_obj=None, now=None):
    """
    Fetch the forecast and analyze tonight's astronomical night.

    Args:
        settings_obj: Settings to use (defaults to global settings)
        now: Current datetime (timezone-aware), defaults to now in the forecast's timezone

    Returns:
        tuple: (night, forecast) where night is a NightAnalysis or None when no
        forecast hours fall inside astronomical night
    """
    if settings_obj is None:
        settings_obj = settings
    latitude, longitude = resolve_location(settings_obj)

    forecast = fetch_forecast(
        settings_obj.astrospheric_api_key,
        latitude,
        longitude,
        timeout=settings_obj.request_timeout_seconds,
    )
    hours = parse_hourly_forecasts(forecast)
    print(f"Received {len(hours)} hourly forecast records")

    if now is None:
        _, local_tz = parse_start_time(forecast)
        now = datetime.datetime.now(local_tz)

    night_bounds = get_astronomical_night(now, latitude, longitude)
    if night_bounds is None:
        print("No astronomical darkness tonight")
        return None, forecast

    night_start, night_end = night_bounds
    print(f"Astronomical Night: {format_time(night_start)} - {format_time(night_end)}")

    tonight_hours = get_tonight_hours(hours, night_start, night_end)
    for hour in tonight_hours:
        status = "[OK]" if hour.is_imageable else "[X] "
        print(f"  {format_time(hour.local_time):>8}: Cloud {hour.cloud_cover:3.0f}%, "
              f"Seeing {hour.seeing:.1f}\", Transp {hour.transparency:4.1f}, "
              f"RH {hour.humidity:3.0f}% -> {hour.hour_score:5.1f} {status}")

    night = analyze_night(tonight_hours)
    if night is not None:
        print(f"Night score: {night.score}/100 ({get_rating(night.score)})")
    return night, forecast


def notify(night, settings_obj=None, throttle=None):
    """
    Send the notification and the forecast image.

    Returns:
        bool: True if the message went out, False if Telegram is not configured

    Raises:
        TelegramError: If the text message cannot be delivered
    """
    if settings_obj is None:
        settings_obj = settings
    if throttle is None:
        throttle = FailureLogThrottle(logger, cooldown_seconds=settings_obj.failure_log_cooldown_seconds)

    latitude, longitude = resolve_location(settings_obj)
    message = build_notification(night, latitude, longitude)

    token = settings_obj.telegram_bot_token
    chat_id = settings_obj.telegram_chat_id
    if not token or not chat_id:
        print("Telegram credentials not provided. Skipping notification.")
        print(f"Would have sent:\n{message}")
        return False

    result = send_message(token, chat_id, message, timeout=settings_obj.request_timeout_seconds)
    if not result.get('ok'):
        raise TelegramError(f"Telegram sendMessage failed: {result.get('description')}")

    # The message is already out, so a photo failure is only logged
    try:
        if settings_obj.send_chart:
            image = create_night_chart(night.hours, night.best_window, title="Tonight's Imaging Forecast")
            photo = send_photo_bytes(token, chat_id, image, caption="Hourly imaging scores",
                                     timeout=settings_obj.request_timeout_seconds)
        else:
            photo = send_photo(token, chat_id, get_clear_outside_image_url(latitude, longitude),
                               caption="Clear Outside 7-day forecast", timeout=settings_obj.request_timeout_seconds)
    except (TelegramError, ValueError) as e:
        throttle.warning('telegram:sendPhoto', "Telegram sendPhoto failed: %s", e)
        return True

    if photo.get('ok'):
        throttle.clear('telegram:sendPhoto')
    else:
        throttle.warning('telegram:sendPhoto', "Telegram sendPhoto failed: %s", photo.get('description'))

    return True


def check_weather_and_notify(settings_obj=None, now=None, throttle=None) -> str:
    """Run one check and return a one-line summary of what happened."""
    if settings_obj is None:
        settings_obj = settings

    night, _ = analyze_tonight(settings_obj, now=now)

    if night is None:
        return "No forecast data available for tonight"

    if not night.should_notify:
        return format_status(night)

    if notify(night, settings_obj, throttle=throttle):
        return f"Notified: {night.reason}"
    return f"Would notify: {night.reason}"


def run_watch(settings_obj=None, throttle=None, sleep=time.sleep, max_runs=None):
    """
    Check repeatedly every watch_interval_minutes.

    Failures do not stop the loop. The same failure is logged at most once per
    cooldown so an outage does not flood the log.
    """
    if settings_obj is None:
        settings_obj = settings
    if throttle is None:
        throttle = FailureLogThrottle(logger, cooldown_seconds=settings_obj.failure_log_cooldown_seconds)

    runs = 0
    while max_runs is None or runs < max_runs:
        try:
            print(check_weather_and_notify(settings_obj, throttle=throttle))
            throttle.clear('check')
        except (AstrosphericError, NoDataError, TelegramError) as e:
            throttle.error('check', "Weather check failed: %s", e)
        except Exception as e:
            throttle.error('check', "Weather check failed unexpectedly: %s", e, exc_info=True)
        runs += 1
        if max_runs is None or runs < max_runs:
            sleep(settings_obj.watch_interval_minutes * 60)
    return runs


def _json_default(value):
    if isinstance(value, (datetime.datetime, datetime.date)):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def night_to_json(night) -> str:
    tonight = dataclasses.asdict(night) if night is not None else None
    return json.dumps({'tonight': tonight}, indent=2, default=_json_default, ensure_ascii=False)


def main(argv=None):
    parser = argparse.ArgumentParser(description="Notify on Telegram when tonight is good for deep-sky imaging.")
    parser.add_argument('--preview', action='store_true',
                        help="Print tonight's analysis as JSON without sending anything")
    parser.add_argument('--watch', action='store_true',
                        help="Keep checking every WATCH_INTERVAL_MINUTES")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    try:
        validate_settings()
    except ConfigError as e:
        print("Configuration Error:")
        print(e)
        sys.exit(1)

    print("=" * 60)
    print("NIGHT QUALITY ALERT")
    print("=" * 60)
    print(f"\n--- Configuration ---")
    print(f"Location: {settings.latitude}, {settings.longitude}")
    print(f"Telegram: {'configured' if settings.telegram_bot_token and settings.telegram_chat_id else 'not configured'}")

    if args.watch:
        print(f"Watching every {settings.watch_interval_minutes} minutes")
        run_watch()
        return

    try:
        if args.preview:
            night, _ = analyze_tonight()
            print(night_to_json(night))
            return

        print(f"\n--- Forecast ---")
        result = check_weather_and_notify()
    except (AstrosphericError, NoDataError, TelegramError) as e:
        print(f"ERROR: {e}")
        sys.exit(1)

    print(f"\n--- Result ---")
    print(result)


if __name__ == "__main__":
    main()
