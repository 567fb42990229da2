"""
This module contains the fixed set of ``TimeUnit`` granularities that metrics
are rolled up into. Every sample is summed into one bucket per unit.

Buckets are encoded as reverse timestamps: the UTC bucket start is formatted
as a decimal like ``yyyyMMddHHmm`` and subtracted from an all-nines sentinel of
the same width. More recent buckets therefore sort first in a plain ascending
scan.
"""

import calendar
from datetime import datetime, timedelta

import pytz


def to_millis(value):
    """
    Convert a ``datetime`` to milliseconds since the epoch. Naive datetimes
    are taken to be UTC. Integers are passed through.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=pytz.utc)
        return calendar.timegm(value.utctimetuple()) * 1000 + \
            value.microsecond // 1000
    return int(value)


epoch = datetime(1970, 1, 1, tzinfo=pytz.utc)


def utc_datetime(timestamp):
    """
    Convert milliseconds since the epoch to an aware UTC ``datetime``. Raises
    ValueError when the result falls outside years 1 to 9999.
    """
    try:
        return epoch + timedelta(milliseconds=timestamp)
    except OverflowError:
        raise ValueError('timestamp out of range: %r' % timestamp)


class TimeUnit(object):

    def __init__(self, name, fmt, sentinel):
        self.name = name
        self.fmt = fmt
        self.sentinel = sentinel
        self.width = len(str(sentinel))
        # Zero-padded so years before 1000 keep a fixed width.
        self.template = '%04d' + '%02d' * (len(fmt) // 2 - 1)

    def __repr__(self):
        return 'TimeUnit(%r)' % self.name

    def __str__(self):
        return self.name

    def bucket_number(self, timestamp):
        dt = utc_datetime(timestamp)
        fields = (dt.year, dt.month, dt.day, dt.hour, dt.minute)
        return int(self.template % fields[:len(self.fmt) // 2])

    def truncate(self, timestamp):
        """
        Given a timestamp in milliseconds, return the start of the bucket
        containing it, also in milliseconds.
        """
        return self.revert_timestamp(self.reverse_timestamp(timestamp))

    def reverse_timestamp(self, timestamp):
        reverse = self.sentinel - self.bucket_number(timestamp)
        return '%0*d' % (self.width, reverse)

    def revert_timestamp(self, encoded):
        """
        Inverse of ``reverse_timestamp()``: return the bucket start in
        milliseconds for an encoded reverse timestamp.
        """
        bucket = '%0*d' % (self.width, self.sentinel - int(encoded))
        dt = datetime.strptime(bucket, self.fmt).replace(tzinfo=pytz.utc)
        return calendar.timegm(dt.utctimetuple()) * 1000


MINUTES = TimeUnit('MINUTES', '%Y%m%d%H%M', 999999999999)
HOURS = TimeUnit('HOURS', '%Y%m%d%H', 9999999999)
DAYS = TimeUnit('DAYS', '%Y%m%d', 99999999)
MONTHS = TimeUnit('MONTHS', '%Y%m', 999999)


time_units = (MINUTES, HOURS, DAYS, MONTHS)

_units_by_name = {unit.name: unit for unit in time_units}


def unit_for_name(name):
    """
    Resolve a column family label like ``'HOURS'`` to its ``TimeUnit``.
    """
    try:
        return _units_by_name[name.upper()]
    except KeyError:
        raise ValueError('invalid time unit: %r' % name)
