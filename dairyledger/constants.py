from datetime import datetime
from zoneinfo import ZoneInfo

from dairyledger.settings import settings

IST = ZoneInfo(settings.timezone)

MONTH_NAMES = {
    1: "January",
    2: "February",
    3: "March",
    4: "April",
    5: "May",
    6: "June",
    7: "July",
    8: "August",
    9: "September",
    10: "October",
    11: "November",
    12: "December",
}


def local_now() -> datetime:
    """Current wall-clock time in IST, without tzinfo.

    All timestamps are stored naive in business-local time so that SQL
    comparisons on due dates behave the same on SQLite and MySQL.
    """
    return datetime.now(IST).replace(tzinfo=None)


def format_period(month: int, year: int) -> str:
    return f"{MONTH_NAMES.get(month, str(month))} {year}"
