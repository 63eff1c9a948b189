"""Tests for the Astrospheric client and forecast normalization."""
import datetime
import pytest
import pytz
import requests
from unittest.mock import patch, MagicMock

from astrospheric import (
    API_BASE,
    AstrosphericError,
    AstrosphericForecast,
    NoCloudCoverData,
    NoDataError,
    fetch_forecast,
    get_value,
    kelvin_to_celsius,
    parse_hourly_forecasts,
    relative_humidity,
)
from conftest import data_points, EASTERN


def parse(payload):
    return parse_hourly_forecasts(AstrosphericForecast.model_validate(payload))


class TestHelpers:

    def test_kelvin_to_celsius(self):
        assert kelvin_to_celsius(273.15) == pytest.approx(0)
        assert kelvin_to_celsius(283.15) == pytest.approx(10)

    @pytest.mark.parametrize("temp_c,dew_point_c,expected", [
        (10, 5, 71.08),
        (15, 5, 51.20),
        (10, 10, 100.0),
    ])
    def test_relative_humidity(self, temp_c, dew_point_c, expected):
        assert relative_humidity(temp_c, dew_point_c) == pytest.approx(expected, abs=0.05)

    def test_relative_humidity_clamped(self):
        # Dew point above temperature is supersaturated, still reported as 100%
        assert relative_humidity(5, 10) == 100.0

    def test_get_value_defaults(self):
        forecast = AstrosphericForecast.model_validate({
            'LocalStartTime': '2025-11-24T20:00:00',
            'Astrospheric_Seeing': [
                {'Value': {'ValueColor': '#fff', 'ActualValue': 1.2}, 'HourOffset': 0},
                None,
            ],
        })
        assert get_value(forecast.seeing, 0, 3) == 1.2
        assert get_value(forecast.seeing, 1, 3) == 3
        assert get_value(forecast.seeing, 5, 3) == 3
        assert get_value(forecast.transparency, 0, 10) == 10


class TestParseHourlyForecasts:

    def test_basic_parsing(self, forecast_payload):
        hours = parse(forecast_payload)

        assert len(hours) == 8
        assert [h.hour_offset for h in hours] == list(range(8))
        assert [h.cloud_cover for h in hours] == [5, 5, 8, 10, 5, 3, 2, 5]
        assert hours[0].seeing == 1.5
        assert hours[0].transparency == 4
        assert hours[0].temperature_c == pytest.approx(15)
        assert hours[0].dew_point_c == pytest.approx(5)
        assert hours[0].humidity == pytest.approx(51.20, abs=0.05)

    def test_scores_computed(self, forecast_payload):
        hours = parse(forecast_payload)
        assert all(h.is_imageable for h in hours)
        assert all(0 <= h.hour_score <= 100 for h in hours)

    def test_local_times(self, forecast_payload):
        hours = parse(forecast_payload)

        assert hours[0].local_time == EASTERN.localize(datetime.datetime(2025, 11, 24, 20, 0))
        assert hours[3].local_time.hour == 23
        assert hours[4].local_time.hour == 0
        assert hours[4].local_time.day == 25

    def test_local_times_across_dst_change(self, forecast_payload):
        forecast_payload['LocalStartTime'] = '2025-11-01T22:00:00'
        hours = parse(forecast_payload)

        assert [h.local_time.hour for h in hours[:6]] == [22, 23, 0, 1, 1, 2]
        assert hours[3].local_time.utcoffset() == datetime.timedelta(hours=-4)
        assert hours[4].local_time.utcoffset() == datetime.timedelta(hours=-5)
        assert hours[4].local_time - hours[3].local_time == datetime.timedelta(hours=1)

    def test_start_time_with_offset(self, forecast_payload):
        forecast_payload['LocalStartTime'] = '2025-11-24T20:00:00-05:00'
        hours = parse(forecast_payload)
        assert hours[0].local_time.hour == 20
        assert hours[0].local_time.tzinfo.zone == 'America/New_York'

    def test_unknown_timezone_falls_back_to_utc(self, forecast_payload):
        forecast_payload['TimeZone'] = 'Mars/Olympus_Mons'
        hours = parse(forecast_payload)
        assert hours[0].local_time.utcoffset() == datetime.timedelta(0)
        assert hours[0].local_time.hour == 20

    @pytest.mark.parametrize("missing,expected_clouds", [
        ([], [5, 5, 8, 10, 5, 3, 2, 5]),
        (['RDPS_CloudCover'], [90] * 8),
    ])
    def test_cloud_cover_priority(self, forecast_payload, missing, expected_clouds):
        for key in missing:
            forecast_payload[key] = None
        hours = parse(forecast_payload)
        assert [h.cloud_cover for h in hours] == expected_clouds

    def test_gfs_last_resort(self, forecast_payload):
        forecast_payload['RDPS_CloudCover'] = None
        forecast_payload['NAM_CloudCover'] = None
        forecast_payload['GFS_CloudCover'] = data_points([20, 25, 30])
        hours = parse(forecast_payload)
        assert [h.cloud_cover for h in hours] == [20, 25, 30]

    def test_no_cloud_cover_is_fatal(self, forecast_payload):
        forecast_payload['RDPS_CloudCover'] = None
        forecast_payload['NAM_CloudCover'] = None
        forecast_payload['GFS_CloudCover'] = None

        with pytest.raises(NoCloudCoverData) as exc_info:
            parse(forecast_payload)

        assert isinstance(exc_info.value, NoDataError)
        assert "No cloud cover data available" in str(exc_info.value)

    def test_missing_cloud_slot_defaults_to_fifty(self, forecast_payload):
        points = data_points([5, 5, 5])
        points[1] = None
        forecast_payload['RDPS_CloudCover'] = points
        hours = parse(forecast_payload)

        assert [h.cloud_cover for h in hours] == [5, 50, 5]
        assert not hours[1].is_imageable

    def test_missing_fields_use_defaults(self, forecast_payload):
        forecast_payload['Astrospheric_Seeing'] = None
        forecast_payload['Astrospheric_Transparency'] = None
        forecast_payload['RDPS_Temperature'] = data_points([288.15] * 2)
        forecast_payload['RDPS_DewPoint'] = None
        hours = parse(forecast_payload)

        assert len(hours) == 8
        assert hours[0].seeing == 3
        assert hours[0].transparency == 10
        assert hours[0].temperature_c == pytest.approx(15)
        assert hours[5].temperature_c == pytest.approx(283 - 273.15)
        assert hours[0].dew_point_c == pytest.approx(278 - 273.15)

    def test_empty_cloud_array_yields_no_hours(self, forecast_payload):
        forecast_payload['RDPS_CloudCover'] = []
        assert parse(forecast_payload) == []


class TestFetchForecast:

    @patch('astrospheric.requests.post')
    def test_fetch_success(self, mock_post, forecast_payload):
        mock_response = MagicMock()
        mock_response.ok = True
        mock_response.status_code = 200
        mock_response.json.return_value = forecast_payload
        mock_post.return_value = mock_response

        forecast = fetch_forecast("key123", 28.66, -81.37, timeout=5)

        assert forecast.time_zone == 'America/New_York'
        assert len(forecast.rdps_cloud_cover) == 8
        mock_post.assert_called_once_with(
            f"{API_BASE}/GetForecastData_V1",
            json={"APIKey": "key123", "Latitude": 28.66, "Longitude": -81.37},
            timeout=5,
        )

    @patch('astrospheric.requests.post')
    def test_http_error(self, mock_post):
        mock_response = MagicMock()
        mock_response.ok = False
        mock_response.status_code = 500
        mock_post.return_value = mock_response

        with pytest.raises(AstrosphericError) as exc_info:
            fetch_forecast("key123", 28.66, -81.37)

        assert "Astrospheric API error: 500" in str(exc_info.value)

    @patch('astrospheric.requests.post')
    def test_network_error(self, mock_post):
        mock_post.side_effect = requests.exceptions.ConnectionError("unreachable")

        with pytest.raises(AstrosphericError) as exc_info:
            fetch_forecast("key123", 28.66, -81.37)

        assert "unreachable" in str(exc_info.value)

    @patch('astrospheric.requests.post')
    def test_invalid_payload(self, mock_post):
        mock_response = MagicMock()
        mock_response.ok = True
        mock_response.json.return_value = {'TimeZone': 'UTC'}
        mock_post.return_value = mock_response

        with pytest.raises(AstrosphericError) as exc_info:
            fetch_forecast("key123", 28.66, -81.37)

        assert "Invalid Astrospheric response" in str(exc_info.value)
