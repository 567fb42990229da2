"""
Decoding of scanned cells back into ``Metric`` records, and the lazy result
sequence handed back by queries.
"""

from .metric import Metric
from .util import split


class DecodeError(ValueError):
    pass


def cell_to_metric(cell, unit):
    """
    Decode a cell from the type-indexed table. The row is
    ``type DELIM reverse timestamp`` and the qualifier is
    ``group DELIM name``. The returned timestamp is the start of the ``unit``
    bucket, and the value is the aggregated sum.
    """
    key = cell.key
    try:
        type, reverse_ts = split(key.row)
        group, name = split(key.cq)
    except ValueError:
        raise DecodeError('malformed key: %r' % (key,))
    try:
        value = int(cell.value)
    except (TypeError, ValueError):
        raise DecodeError('non-numeric value %r at %r' % (cell.value, key))
    return Metric(timestamp=unit.revert_timestamp(reverse_ts),
                  group=group,
                  type=type,
                  name=name,
                  visibility=key.visibility,
                  value=value)


class CloseableIterable(object):
    """
    Wraps a scanner so that each ``iter()`` runs a fresh scan and yields
    ``transform(cell)`` for each cell. Iteration after ``close()`` fails.
    Usable as a context manager.
    """
    def __init__(self, scanner, transform):
        self.scanner = scanner
        self.transform = transform

    def __iter__(self):
        for cell in self.scanner:
            yield self.transform(cell)

    def close(self):
        self.scanner.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, tb):
        self.close()
