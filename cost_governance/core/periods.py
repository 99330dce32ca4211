import datetime as dt
import math

WEEK = dt.timedelta(days=7)
DAY_SECONDS = 24 * 60 * 60


def week_start(moment: dt.datetime) -> dt.datetime:
    """Monday 00:00:00 of the ISO week containing ``moment``.

    The result keeps ``moment``'s tzinfo, so callers decide which calendar the
    week belongs to by converting ``moment`` first.
    """
    midnight = moment.replace(hour=0, minute=0, second=0, microsecond=0)
    return midnight - dt.timedelta(days=midnight.weekday())


def week_end(start: dt.datetime) -> dt.datetime:
    # Wall-clock arithmetic keeps Monday 00:00 across DST shifts.
    return start + WEEK


def days_until(moment: dt.datetime, now: dt.datetime) -> int:
    """Whole days from ``now`` until ``moment``, rounded up, never negative."""
    seconds = (moment - now).total_seconds()
    return max(0, math.ceil(seconds / DAY_SECONDS))


def week_key(start: dt.datetime) -> str:
    return start.strftime("%Y%m%d")


def day_key(day: dt.date) -> str:
    return day.strftime("%Y%m%d")
