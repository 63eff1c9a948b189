import pytest
import datetime
import pytz
import sys
import os

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from night_quality import HourlyForecast

EASTERN = pytz.timezone('America/New_York')
NIGHT_START = EASTERN.localize(datetime.datetime(2025, 11, 24, 19, 0))


def make_hour(index=0, start=NIGHT_START, **overrides):
    """Build an HourlyForecast with good defaults; derived fields are recomputed"""
    values = {
        'hour_offset': index,
        'local_time': start + datetime.timedelta(hours=index),
        'cloud_cover': 10,
        'seeing': 2,
        'transparency': 5,
        'temperature_c': 10,
        'dew_point_c': 5,
        'humidity': 70,
    }
    values.update(overrides)
    return HourlyForecast(**values)


def make_night(cloud_covers, **overrides):
    """One hour per cloud cover value, consecutive from NIGHT_START"""
    return [make_hour(i, cloud_cover=cc, **overrides) for i, cc in enumerate(cloud_covers)]


def data_points(values):
    """Astrospheric-style data point array"""
    return [
        {'Value': {'ValueColor': '#000000', 'ActualValue': v}, 'HourOffset': i}
        for i, v in enumerate(values)
    ]


@pytest.fixture
def mock_settings():
    """Settings for a site in Florida with Telegram configured"""
    from main import Settings
    return Settings(
        astrospheric_api_key="test_api_key",
        telegram_bot_token="test_bot_token",
        telegram_chat_id="12345",
        latitude=28.661111,
        longitude=-81.365619,
        send_chart=True,
    )


@pytest.fixture
def forecast_payload():
    """Astrospheric response with 8 clear hours starting 8 PM"""
    return {
        'LocalStartTime': '2025-11-24T20:00:00',
        'UTCStartTime': '2025-11-25T01:00:00',
        'TimeZone': 'America/New_York',
        'Latitude': 28.661111,
        'Longitude': -81.365619,
        'APICreditUsedToday': 4,
        'RDPS_CloudCover': data_points([5, 5, 8, 10, 5, 3, 2, 5]),
        'NAM_CloudCover': data_points([90] * 8),
        'GFS_CloudCover': None,
        'Astrospheric_Seeing': data_points([1.5] * 8),
        'Astrospheric_Transparency': data_points([4] * 8),
        'RDPS_Temperature': data_points([288.15] * 8),
        'RDPS_DewPoint': data_points([278.15] * 8),
        'RDPS_WindVelocity': None,
        'RAP_ColumnAerosolMass': None,
    }


@pytest.fixture
def forecast_payload_cloudy(forecast_payload):
    """Same night but overcast with near-saturated air"""
    payload = dict(forecast_payload)
    payload['RDPS_CloudCover'] = data_points([100, 100, 95, 90, 100, 100, 100, 100])
    payload['RDPS_DewPoint'] = data_points([287.65] * 8)
    return payload
