"""
Expiry policies for web resources.

A policy computes when a cached copy expires from the time it was last
checked. Resources refreshed together should share one ExpiryContext, so
that either all or none of them are refetched when a check straddles the
expiry time.

Calendar arithmetic is done on naive wall clock times in the context's
time zone, so "daily at 06:00" means 06:00 local time whatever the offset
was when the resource was last checked.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional, Union

from dateutil.relativedelta import relativedelta, weekday
from dateutil.tz import tzlocal

from webcache.errors import UsageError
from webcache.listeners import ResourceListener

logger = logging.getLogger(__name__)

DATE_FORMAT = '%Y-%m-%dT%H:%M'

# Keeps tests and careless callers from polling external sites.
MIN_WAIT_MINUTES = 10


@dataclass(frozen=True)
class ExpiryContext:
    """The "now" used for a batch of related expiry checks."""

    now: datetime

    def __post_init__(self):
        if self.now.utcoffset() is None:
            raise UsageError(f'ExpiryContext requires a timezone aware time: {self.now!r}')

    @classmethod
    def current(cls) -> 'ExpiryContext':
        return cls(datetime.now(tzlocal()))

    def wall_clock(self, timestamp: datetime) -> datetime:
        """Convert a timestamp to naive local time in this context's zone."""
        return timestamp.astimezone(self.now.tzinfo).replace(tzinfo=None)


class ExpiryListener(ResourceListener):
    """Expires a resource once the time computed by a rule has passed."""

    def __init__(self, rule: Callable[[datetime], datetime], description: str):
        self.rule = rule
        self.description = description

    def is_expired(self, resource, context: ExpiryContext) -> Optional[bool]:
        timestamp = resource.properties.timestamp
        if timestamp is None:
            # Should not happen, the first fetch always sets a timestamp.
            # Not None, otherwise it looks like no listener checks expiry.
            logger.warning('Missing timestamp for %s, so assuming expiry', resource.name)
            return True

        now = context.wall_clock(context.now)
        expiry = self.rule(context.wall_clock(timestamp))
        expired = expiry < now

        if expired:
            logger.info('Expiry %s has passed for %s', expiry.strftime(DATE_FORMAT), resource.name)
        else:
            logger.info('Expiry %s (in %s) has not passed for %s',
                        expiry.strftime(DATE_FORMAT), duration_description(expiry - now), resource.name)
        return expired

    def __repr__(self):
        return f'ExpiryListener({self.description})'


class _FixedExpiry(ResourceListener):

    def __init__(self, expired: bool):
        self.expired = expired

    def is_expired(self, resource, context: ExpiryContext) -> Optional[bool]:
        if self.expired:
            logger.info('Expiry forced for %s', resource.name)
        else:
            logger.debug('Expiry disabled for %s', resource.name)
        return self.expired

    def __repr__(self):
        return 'always()' if self.expired else 'never()'


def always() -> ResourceListener:
    """Always expired, forcing a conditional fetch on every read."""
    return _FixedExpiry(True)


def never() -> ResourceListener:
    """Never expired. Avoids the warning logged when no listener has an opinion."""
    return _FixedExpiry(False)


def on_hours(*hours: int) -> ExpiryListener:
    """Expire at the next of the given hours of the day."""
    if not hours:
        raise UsageError('At least one hour is required')
    for hour in hours:
        _check_time(hour, 0)
    hours = tuple(sorted(set(hours)))
    return ExpiryListener(lambda last_checked: next_hour_from(last_checked, *hours),
                          f'on_hours{hours}')


def daily(hour: int = 0, minute: int = 0) -> ExpiryListener:
    _check_time(hour, minute)
    return ExpiryListener(lambda last_checked: next_daily(last_checked, hour, minute),
                          f'daily({hour:02d}:{minute:02d})')


def day_of_week(day: Union[int, weekday], hour: int = 0, minute: int = 0) -> ExpiryListener:
    """Expire weekly.

    Args:
        day: dateutil weekday such as MO, or 0 (Monday) to 6 (Sunday)
    """
    day = _check_weekday(day)
    _check_time(hour, minute)
    return ExpiryListener(lambda last_checked: next_day_of_week(last_checked, day, hour, minute),
                          f'day_of_week({day}, {hour:02d}:{minute:02d})')


def wait_days(days: int) -> ExpiryListener:
    """Wait a number of days after the last check."""
    if days <= 0:
        raise UsageError(f'Wait must be at least one day, not {days}')
    return ExpiryListener(lambda last_checked: plus_wait(last_checked, days=days),
                          f'wait_days({days})')


def wait_hours(hours: int) -> ExpiryListener:
    """Wait a number of hours after the last check.

    Intended for sites that support 304 responses.
    """
    if hours <= 0:
        raise UsageError(f'Wait must be at least one hour, not {hours}')
    return ExpiryListener(lambda last_checked: plus_wait(last_checked, hours=hours),
                          f'wait_hours({hours})')


def wait_minutes(minutes: int) -> ExpiryListener:
    """Wait a number of minutes after the last check.

    Intended for sites that support 304 responses. There should always be a
    wait so that tests do not ping external resources, so waits of
    MIN_WAIT_MINUTES or less are rejected.
    """
    if minutes <= MIN_WAIT_MINUTES:
        raise UsageError(f'Minimum wait is {MIN_WAIT_MINUTES} minutes, not {minutes}')
    return ExpiryListener(lambda last_checked: plus_wait(last_checked, minutes=minutes),
                          f'wait_minutes({minutes})')


def plus_wait(last_checked: datetime, days: int = 0, hours: int = 0, minutes: int = 0) -> datetime:
    """Add a wait to the last check time, rounding the result up.

    Always rounds up to a whole minute. Waits of over two days round up to
    the hour; waits of one or two days, or of over two hours, round up to a
    quarter hour.
    """
    result = last_checked + timedelta(days=days, hours=hours, minutes=minutes)

    if result.microsecond > 0:
        result += timedelta(microseconds=1000000 - result.microsecond)

    if result.second > 0:
        result += timedelta(seconds=60 - result.second)

    if days > 2:
        round_minutes = 60
    elif days > 0 or hours > 2:
        round_minutes = 15
    else:
        round_minutes = 0

    if round_minutes > 0:
        remainder = result.minute % round_minutes
        if remainder > 0:
            result += timedelta(minutes=round_minutes - remainder)

    return result


def next_hour_from(last_checked: datetime, *hours_of_day: int) -> datetime:
    """The first of the sorted hours after the last check's hour.

    Falls back to the first hour on the next day.
    """
    for hour in hours_of_day:
        if last_checked.hour < hour:
            return last_checked.replace(hour=hour, minute=0, second=0, microsecond=0)

    return last_checked.replace(hour=hours_of_day[0], minute=0, second=0, microsecond=0) + timedelta(days=1)


def next_daily(last_checked: datetime, hour: int, minute: int) -> datetime:
    result = last_checked.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if result < last_checked:
        result += timedelta(days=1)
    return result


def next_day_of_week(last_checked: datetime, day: Union[int, weekday], hour: int, minute: int) -> datetime:
    # weekday without an n moves forward to the day, or stays put if already there
    return next_daily(last_checked, hour, minute) + relativedelta(weekday=day)


def duration_description(duration: timedelta) -> str:
    """Approximate human readable duration, for log messages."""
    seconds = int(duration.total_seconds())
    if seconds == 1:
        return '1 second'
    if seconds < 60:
        return f'{seconds} seconds'

    minutes = (seconds + 59) // 60
    if minutes == 1:
        return '1 minute'
    if minutes < 60:
        return f'{minutes} minutes'

    if minutes < 12 * 60:
        hours, minutes = divmod(minutes, 60)
        hour_units = 'hour' if hours == 1 else 'hours'
        minute_units = 'minute' if minutes == 1 else 'minutes'
        return f'{hours} {hour_units} and {minutes} {minute_units}'

    hours = (minutes + 59) // 60
    if hours < 48:
        return f'{hours} hours'

    return f'{(hours + 23) // 24} days'


def _check_time(hour: int, minute: int) -> None:
    if not 0 <= hour <= 23:
        raise UsageError(f'Hour must be between 0 and 23, not {hour}')
    if not 0 <= minute <= 59:
        raise UsageError(f'Minute must be between 0 and 59, not {minute}')


def _check_weekday(day: Union[int, weekday]) -> Union[int, weekday]:
    if isinstance(day, weekday):
        return day
    if not 0 <= day <= 6:
        raise UsageError(f'Day of week must be between 0 (Monday) and 6 (Sunday), not {day}')
    return day
