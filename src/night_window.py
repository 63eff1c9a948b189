"""Astronomical night selection (sun more than 18 degrees below the horizon)."""
import datetime

from skyfield import almanac
from skyfield.api import load, wgs84

# almanac.dark_twilight_day() states
DARK = 0


def get_astronomical_night(now, latitude, longitude):
    """
    Find the astronomical night to analyze.

    Args:
        now: Current datetime (timezone-aware)
        latitude: Observer latitude
        longitude: Observer longitude

    Returns:
        tuple: (night_start, night_end) in now's timezone, or None when the sun
        never gets 18 degrees below the horizon (high-latitude summer)

    Logic:
        - If currently in astronomical darkness: use the current night
        - Otherwise: use the next night
    """
    ts = load.timescale()
    eph = load('de421.bsp')
    observer = wgs84.latlon(latitude, longitude)

    # Look back a day so a night already in progress has its start
    t0 = ts.from_datetime(now - datetime.timedelta(days=1))
    t1 = ts.from_datetime(now + datetime.timedelta(days=2))

    times, states = almanac.find_discrete(t0, t1, almanac.dark_twilight_day(eph, observer))

    local_tz = now.tzinfo
    nights = []
    dusk = None
    for t, state in zip(times, states):
        dt = t.astimezone(local_tz)
        if state == DARK:
            dusk = dt
        elif dusk is not None:
            nights.append((dusk, dt))
            dusk = None

    for night_start, night_end in nights:
        if night_end > now:
            return night_start, night_end
    return None


def get_tonight_hours(hours, night_start, night_end):
    """Hours whose local time falls in [night_start, night_end)."""
    return [h for h in hours if night_start <= h.local_time < night_end]
