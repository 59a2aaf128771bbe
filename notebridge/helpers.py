"""
This is a helper file for note synchronisation and the CLI.
"""

from __future__ import annotations

import sys
import time
import uuid
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from pathlib import Path

from decouple import config

DATA_LOCATION: Path = config('NOTEBRIDGE_HOME', default=str(Path.home() / '.notebridge'), cast=Path)  #: Location
# where application data is stored.


def get_uuid() -> str:
    """
    Generates a UUID.

    :return: a UUID.
    """
    return str(uuid.uuid4())


def now_ms() -> int:
    """
    Get the current instant as milliseconds since the epoch, which is how note timestamps are stored.

    :return: the current time in epoch milliseconds.
    """
    return int(time.time() * 1000)


def db_folder() -> Path:
    """
    Get the location of the SQLite database file.

    :return: path to the SQLite database file.
    """
    DATA_LOCATION.mkdir(parents=True, exist_ok=True)
    return DATA_LOCATION / "NoteBridge.db"


def settings_folder() -> Path:
    """
    Get the location of the Application Data folder for NoteBridge

    :return: path to the Application Data folder.
    """
    folder = DATA_LOCATION
    folder.mkdir(parents=True, exist_ok=True)
    return folder


def log_folder() -> Path:
    """
    Get the default location of the log folder.

    :return: path to the log folder.
    """
    folder = DATA_LOCATION / 'logs'
    folder.mkdir(parents=True, exist_ok=True)
    return folder


class DateUtil:
    """
    Utility class for converting between epoch milliseconds and several date/time formats.
    """

    HTTP_DATETIME = "%a, %d %b %Y %H:%M:%S GMT"
    DISPLAY_DATETIME = "%Y-%m-%d %H:%M:%S"
    SQLITE_DATETIME = "%Y-%m-%d %H:%M:%S"

    @staticmethod
    def from_millis(millis: int) -> datetime:
        """
        Convert epoch milliseconds to an aware UTC :py:class:`datetime`.

        :param millis: milliseconds since the epoch.
        :return: the matching UTC datetime.
        """
        return datetime.fromtimestamp(millis / 1000, tz=timezone.utc)

    @staticmethod
    def to_millis(obj: datetime) -> int:
        """
        Convert a :py:class:`datetime` to epoch milliseconds. Naive datetimes are taken to be UTC.

        :param obj: the datetime to convert.
        :return: milliseconds since the epoch.
        """
        if obj.tzinfo is None:
            obj = obj.replace(tzinfo=timezone.utc)
        return int(obj.timestamp() * 1000)

    @staticmethod
    def parse_http_date(value: str) -> datetime | None:
        """
        Parse an RFC 1123 date as sent in HTTP headers and WebDAV properties. Day and month names are always English,
        so the current locale is not used.

        :param value: the date string, e.g. ``Mon, 01 Jan 2024 10:00:00 GMT``.
        :return: an aware datetime, or ``None`` if the value cannot be parsed.
        """
        try:
            obj = parsedate_to_datetime(value.strip())
        except (TypeError, ValueError, IndexError):
            return None
        if obj is None:
            return None
        if obj.tzinfo is None:
            obj = obj.replace(tzinfo=timezone.utc)
        return obj

    @staticmethod
    def convert(source_format: str,
                obj: str | datetime,
                required_format: str = '') -> str | datetime | bool:
        """
        Convert one date/datetime format to another.

        :param source_format: the format of the source date/datetime. Can be left empty if ``obj`` is a :py:class:`datetime`
        object.
        :param obj: what to convert from. Can either be a string, or a :py:class:`datetime` object.
        :param required_format: the format required if the required output is of type :py:class:`str`.

        """
        if isinstance(obj, str) and source_format == DateUtil.HTTP_DATETIME:
            obj = DateUtil.parse_http_date(obj)
            if obj is None:
                return False
        elif isinstance(obj, str):
            try:
                obj = datetime.strptime(obj.strip(), source_format)
            except ValueError:
                return False
        if required_format == '':
            return obj
        else:
            try:
                return obj.strftime(required_format)
            except ValueError:
                print('Could not convert date to specified format {}'.format(required_format), file=sys.stderr)
                return False
