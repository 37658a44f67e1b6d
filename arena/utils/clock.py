from datetime import datetime, timedelta, timezone


def utc_now() -> datetime:
    """Naive UTC timestamp, matching how SQLite round-trips DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def utc_today(now: datetime = None) -> str:
    """ISO date of the server-side UTC day."""
    return (now or utc_now()).date().isoformat()


def start_of_utc_day(now: datetime = None) -> datetime:
    now = now or utc_now()
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def minutes_ago(minutes: float, now: datetime = None) -> datetime:
    return (now or utc_now()) - timedelta(minutes=minutes)
