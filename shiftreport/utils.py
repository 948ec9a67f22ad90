from datetime import date, datetime
from typing import Any, Optional

from dateutil import parser as date_parser
from dateutil import tz

# (first day of the era, era name), newest first
JAPANESE_ERAS = (
    (datetime(2019, 5, 1), '令和'),
    (datetime(1989, 1, 8), '平成'),
    (datetime(1926, 12, 25), '昭和'),
    (datetime(1912, 7, 30), '大正'),
    (datetime(1868, 10, 23), '明治'),
)

WEEKDAYS_JA = ('月', '火', '水', '木', '金', '土', '日')


def to_local_naive(dt: datetime, tz_name: str) -> datetime:
    """Aware datetimes are converted to `tz_name` wall time; naive ones are kept as they are."""
    if dt.tzinfo is not None:
        zone = tz.gettz(tz_name) or tz.UTC
        dt = dt.astimezone(zone).replace(tzinfo=None)
    return dt.replace(microsecond=0)


def parse_timestamp(raw: Any, tz_name: str = 'Asia/Tokyo') -> Optional[datetime]:
    if raw is None:
        return None
    if isinstance(raw, datetime):
        return to_local_naive(raw, tz_name)
    if isinstance(raw, date):
        return datetime(raw.year, raw.month, raw.day)
    s = str(raw).strip()
    if not s:
        return None
    try:
        return to_local_naive(date_parser.parse(s), tz_name)
    except (ValueError, OverflowError):
        return None


def is_date_only(raw: Any) -> bool:
    if isinstance(raw, datetime):
        return False
    if isinstance(raw, date):
        return True
    s = str(raw or '').strip()
    return len(s) == 10 and s[4] == '-' and s[7] == '-'


def now_local(tz_name: str = 'Asia/Tokyo') -> datetime:
    zone = tz.gettz(tz_name) or tz.UTC
    return datetime.now(zone).replace(tzinfo=None)


def format_wareki_datetime(dt: datetime) -> str:
    """令和8年1月15日木曜8時05分"""
    era_name, era_year = None, None
    naive = dt.replace(tzinfo=None)
    for start, name in JAPANESE_ERAS:
        if naive >= start:
            era_name = name
            era_year = naive.year - start.year + 1
            break
    if era_name is None:
        year_part = f"{naive.year}年"
    else:
        year_part = f"{era_name}{'元' if era_year == 1 else era_year}年"
    dow = WEEKDAYS_JA[naive.weekday()]
    return f"{year_part}{naive.month}月{naive.day}日{dow}曜{naive.hour}時{naive.minute:02d}分"


def format_date_for_file(dt: datetime) -> str:
    return dt.strftime('%Y%m%d')


def format_time_for_file(dt: datetime) -> str:
    return dt.strftime('%H%M%S')


def iso(dt: datetime) -> str:
    return dt.isoformat(timespec='microseconds')
