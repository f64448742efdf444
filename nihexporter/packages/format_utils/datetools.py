'''
datetools
=========

Tools for processing dates in data.
'''

from datetime import date as _date
from datetime import datetime as dt
import pandas as pd

DAYS_PER_YEAR = 365
DATE_FORMATS = [
    '%Y-%m-%d',   # 2013-10-15
    '%m/%d/%Y',   # 10/15/2013 (EXPORTER style)
    '%Y/%m/%d',   # 2013/10/15
    '%Y-%m-%d %H:%M:%S',  # 2013-10-15 00:00:00
    '%b %d %Y',   # Oct 15 2013
    '%d %B %Y',   # 15 October 2013
    '%B %Y',      # October 2013
    '%Y'          # 2013
]


def extract_date(date, date_format='%Y-%m-%d', return_date_object=False):
    '''
    Determine the date format, convert and return in YYYY-MM-DD format.

    Args:
        date (str): the full date string.
    Returns:
        Formatted date string.
    '''
    date_object = None
    for df in DATE_FORMATS:
        try:
            date_object = dt.strptime(date.strip(), df)
            break
        except (ValueError, AttributeError):
            pass

    if not date_object:
        raise ValueError(f"No date conversion possible for: {date}")

    if return_date_object:
        return date_object
    return date_object.strftime(date_format)


def _to_timestamp(value):
    """Convert a single date-like value to a :code:`pd.Timestamp`,
    leaving nulls as :code:`pd.NaT`."""
    if value is None or (not isinstance(value, str) and pd.isnull(value)):
        return pd.NaT
    if isinstance(value, (dt, _date)):
        return pd.Timestamp(value)
    value = str(value)
    if not value.strip():
        return pd.NaT
    return pd.Timestamp(extract_date(value, return_date_object=True))


def to_datetime_column(values):
    '''
    Convert a column of date strings (or date objects) of unknown
    formatting to a datetime column.

    Args:
        values (pd.Series): Column of date-like values.
    Returns:
        :code:`pd.Series` of dtype datetime64, with nulls as NaT.
    Raises:
        ValueError if any non-null value can't be interpreted as a date.
    '''
    return pd.to_datetime(values.map(_to_timestamp))


def days_to_years(days):
    """Convert a number (or column) of days to years"""
    return days / DAYS_PER_YEAR
