"""
Astrospheric forecast client.

Fetches the hourly astronomy forecast and normalizes it into HourlyForecast
records. Seeing and transparency both use "lower is better" scales.

Cloud cover comes from one of three weather models, tried in order:
    - RDPS: Canadian regional model, highest resolution
    - NAM: North American mesoscale model
    - GFS: global model, lowest resolution
"""
import datetime
import logging
import math
from typing import Optional

import pytz
import requests
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from night_quality import HourlyForecast

logger = logging.getLogger(__name__)

API_BASE = "https://astrosphericpublicaccess.azurewebsites.net/api"

# Defaults for hours missing from a model array
DEFAULT_CLOUD_COVER = 50.0
DEFAULT_SEEING = 3.0
DEFAULT_TRANSPARENCY = 10.0
DEFAULT_TEMPERATURE_K = 283.0
DEFAULT_DEW_POINT_K = 278.0

# Magnus formula constants
MAGNUS_A = 17.27
MAGNUS_B = 237.7


class NoDataError(Exception):
    """Raised when the forecast lacks data the analysis cannot do without."""
    pass


class NoCloudCoverData(NoDataError):
    """Raised when none of the cloud cover models returned data."""
    pass


class AstrosphericError(Exception):
    """Raised when the Astrospheric API cannot be reached or returns bad data."""
    pass


class ForecastValue(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    value_color: str = Field("", alias="ValueColor")
    actual_value: float = Field(alias="ActualValue")


class DataPoint(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    value: ForecastValue = Field(alias="Value")
    hour_offset: int = Field(alias="HourOffset")


DataPoints = Optional[list[Optional[DataPoint]]]


class AstrosphericForecast(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    local_start_time: str = Field(alias="LocalStartTime")
    utc_start_time: Optional[str] = Field(None, alias="UTCStartTime")
    time_zone: str = Field("UTC", alias="TimeZone")
    latitude: Optional[float] = Field(None, alias="Latitude")
    longitude: Optional[float] = Field(None, alias="Longitude")
    api_credit_used_today: Optional[float] = Field(None, alias="APICreditUsedToday")

    rdps_cloud_cover: DataPoints = Field(None, alias="RDPS_CloudCover")
    nam_cloud_cover: DataPoints = Field(None, alias="NAM_CloudCover")
    gfs_cloud_cover: DataPoints = Field(None, alias="GFS_CloudCover")
    seeing: DataPoints = Field(None, alias="Astrospheric_Seeing")
    transparency: DataPoints = Field(None, alias="Astrospheric_Transparency")
    temperature: DataPoints = Field(None, alias="RDPS_Temperature")
    dew_point: DataPoints = Field(None, alias="RDPS_DewPoint")
    wind_velocity: DataPoints = Field(None, alias="RDPS_WindVelocity")
    column_aerosol_mass: DataPoints = Field(None, alias="RAP_ColumnAerosolMass")


def fetch_forecast(api_key: str, latitude: float, longitude: float, timeout: float = 30) -> AstrosphericForecast:
    """
    Fetch forecast data from the Astrospheric API.

    Args:
        api_key: Astrospheric Pro API key (100 credits/day, reset at midnight UTC)
        latitude: Observer latitude
        longitude: Observer longitude
        timeout: Request timeout in seconds

    Returns:
        AstrosphericForecast: Validated response

    Raises:
        AstrosphericError: On network failure, non-2xx status or an invalid payload
    """
    url = f"{API_BASE}/GetForecastData_V1"
    payload = {
        "APIKey": api_key,
        "Latitude": latitude,
        "Longitude": longitude,
    }
    try:
        response = requests.post(url, json=payload, timeout=timeout)
    except requests.exceptions.RequestException as e:
        raise AstrosphericError(f"Astrospheric request failed: {e}") from e

    if not response.ok:
        raise AstrosphericError(f"Astrospheric API error: {response.status_code}")

    try:
        forecast = AstrosphericForecast.model_validate(response.json())
    except (ValueError, ValidationError) as e:
        raise AstrosphericError(f"Invalid Astrospheric response: {e}") from e

    logger.info("Fetched Astrospheric forecast (%s credits used today)", forecast.api_credit_used_today)
    return forecast


def kelvin_to_celsius(kelvin: float) -> float:
    return kelvin - 273.15


def relative_humidity(temp_c: float, dew_point_c: float) -> float:
    """Relative humidity (%) from temperature and dew point via the Magnus approximation."""
    alpha_t = (MAGNUS_A * temp_c) / (MAGNUS_B + temp_c)
    alpha_td = (MAGNUS_A * dew_point_c) / (MAGNUS_B + dew_point_c)
    rh = 100 * math.exp(alpha_td - alpha_t)
    return min(100.0, max(0.0, rh))


def get_value(data_points, index: int, default: float) -> float:
    """Value at index, or default when the array or the slot is missing."""
    if not data_points or index >= len(data_points) or data_points[index] is None:
        return default
    return data_points[index].value.actual_value


def parse_start_time(forecast: AstrosphericForecast):
    """
    Parse LocalStartTime into an aware datetime in the forecast's timezone.

    Returns:
        tuple: (start, local_tz)
    """
    try:
        local_tz = pytz.timezone(forecast.time_zone)
    except pytz.UnknownTimeZoneError:
        logger.warning("Unknown timezone %s, defaulting to UTC", forecast.time_zone)
        local_tz = pytz.utc

    start = datetime.datetime.fromisoformat(forecast.local_start_time)
    if start.tzinfo is None:
        return local_tz.localize(start), local_tz
    return start.astimezone(local_tz), local_tz


def parse_hourly_forecasts(forecast: AstrosphericForecast) -> list[HourlyForecast]:
    """
    Normalize an API response into scored hourly records.

    Only cloud cover is mandatory. Every other field falls back to a default
    for missing arrays or slots, and so does a missing slot inside the chosen
    cloud cover array.

    Raises:
        NoCloudCoverData: If RDPS, NAM and GFS cloud cover are all absent
    """
    cloud_data = next(
        (points for points in (forecast.rdps_cloud_cover, forecast.nam_cloud_cover, forecast.gfs_cloud_cover)
         if points is not None),
        None,
    )
    if cloud_data is None:
        raise NoCloudCoverData("No cloud cover data available")

    start, local_tz = parse_start_time(forecast)
    hours = []

    for i in range(len(cloud_data)):
        # normalize() fixes the UTC offset when the night crosses a DST change
        local_time = local_tz.normalize(start + datetime.timedelta(hours=i))

        temp_c = kelvin_to_celsius(get_value(forecast.temperature, i, DEFAULT_TEMPERATURE_K))
        dew_point_c = kelvin_to_celsius(get_value(forecast.dew_point, i, DEFAULT_DEW_POINT_K))

        hours.append(HourlyForecast(
            hour_offset=i,
            local_time=local_time,
            cloud_cover=get_value(cloud_data, i, DEFAULT_CLOUD_COVER),
            seeing=get_value(forecast.seeing, i, DEFAULT_SEEING),
            transparency=get_value(forecast.transparency, i, DEFAULT_TRANSPARENCY),
            temperature_c=temp_c,
            dew_point_c=dew_point_c,
            humidity=relative_humidity(temp_c, dew_point_c),
        ))

    logger.debug("Parsed %d forecast hours starting %s", len(hours), start.isoformat())
    return hours
