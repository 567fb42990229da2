"""
Data model and shared machinery for sorted key-value store connectors.

A table holds cells, each addressed by a ``Key`` of (row, column family,
column qualifier, visibility, timestamp) and sorted in that order with newer
timestamps first. Server-side stages (``IteratorSetting``) attached to a table
transform the sorted cell stream at scan time and when batches or whole tables
are compacted.

A connector subclass should implement at least the following methods.

    def table_exists(self, table): ...
    def _create(self, table): ...
    def _attach(self, table, setting, scopes): ...
    def get_iterators(self, table, scope): ...
    def _read(self, table, rng): ...
    def _write(self, table, cells): ...
    def _replace(self, table, cells): ...

"""

import time
import logging
from collections import namedtuple

from .errors import (KVError, TableNotFoundError, TableExistsError,
                     MutationsRejectedError)
from .visibility import Authorizations, ColumnVisibility, visible
from . import iterators


log = logging.getLogger(__name__)


SCAN = 'scan'
MINC = 'minc'
MAJC = 'majc'

all_scopes = (SCAN, MINC, MAJC)


Key = namedtuple('Key', ['row', 'cf', 'cq', 'visibility', 'timestamp'])

Cell = namedtuple('Cell', ['key', 'value'])


def sort_key(key):
    return (key.row, key.cf, key.cq, key.visibility, -key.timestamp)


class Range(object):
    """
    An inclusive range of rows. A bound of None is unbounded.
    """
    def __init__(self, start=None, end=None):
        if start is not None and end is not None and start > end:
            raise KVError('start row %r sorts after end row %r' %
                          (start, end))
        self.start = start
        self.end = end

    def __repr__(self):
        return 'Range(%r, %r)' % (self.start, self.end)

    def __contains__(self, row):
        if self.start is not None and row < self.start:
            return False
        if self.end is not None and row > self.end:
            return False
        return True


class Mutation(object):
    """
    A set of updates to a single row.
    """
    def __init__(self, row):
        self.row = row
        self.updates = []

    def put(self, cf, cq, visibility, timestamp, value):
        if not isinstance(visibility, ColumnVisibility):
            visibility = ColumnVisibility(visibility)
        key = Key(self.row, cf, cq, visibility.expression, int(timestamp))
        self.updates.append(Cell(key, value))

    def estimated_size(self):
        size = 0
        for key, value in self.updates:
            size += (len(key.row) + len(key.cf) + len(key.cq) +
                     len(key.visibility) + len(value) + 8)
        return size


class IteratorSetting(object):
    """
    Configuration of one server-side stage: a ``priority`` (lower runs
    closer to the data), a unique ``name``, the stage class and its options.
    """
    def __init__(self, priority, name, iterator_class, options=None):
        if isinstance(iterator_class, str):
            iterator_class = iterators.iterator_for_name(iterator_class)
        self.priority = priority
        self.name = name
        self.iterator_class = iterator_class
        self.options = dict(options or {})

    def __repr__(self):
        return 'IteratorSetting(%r, %r, %s, %r)' % (
            self.priority, self.name, self.iterator_class.__name__,
            self.options)

    def build(self):
        return self.iterator_class(self.options)


def apply_iterators(settings, cells):
    for setting in sorted(settings, key=lambda s: s.priority):
        cells = setting.build().apply(cells)
    return cells


class BatchWriter(object):
    """
    Buffers mutations for one table and writes them in batches. A batch is
    written when the buffered size reaches ``max_memory`` bytes, when a
    mutation is added more than ``max_latency`` milliseconds after the oldest
    buffered one, or on ``flush()``/``close()``.

    This is NOT thread-safe.
    """
    def __init__(self, connector, table, max_memory, max_latency,
                 max_write_threads):
        self.connector = connector
        self.table = table
        self.max_memory = max_memory
        self.max_latency = max_latency
        self.max_write_threads = max_write_threads

        self.buffered = []
        self.buffered_bytes = 0
        self.oldest = None
        self.closed = False

    def add_mutation(self, mutation):
        if self.closed:
            raise MutationsRejectedError('batch writer for %r is closed' %
                                         self.table)
        if not self.buffered:
            self.oldest = time.time()
        self.buffered.extend(mutation.updates)
        self.buffered_bytes += mutation.estimated_size()

        age = (time.time() - self.oldest) * 1000
        if self.buffered_bytes >= self.max_memory or age >= self.max_latency:
            self.flush()

    def flush(self):
        if self.closed:
            raise MutationsRejectedError('batch writer for %r is closed' %
                                         self.table)
        if not self.buffered:
            return
        cells = self.buffered
        self.buffered = []
        self.buffered_bytes = 0
        self.oldest = None
        log.debug('Flushing %d cells to %r', len(cells), self.table)
        self.connector.write_batch(self.table, cells)

    def close(self):
        if not self.closed:
            self.flush()
            self.closed = True


class Scanner(object):
    """
    Reads cells from one table within a set of row ranges. Cells are filtered
    by the fetched columns and by ``auths``, then passed through the table's
    scan-scope iterators and any iterators added to this scanner.

    Iterating a scanner starts a fresh scan each time.
    """
    def __init__(self, connector, table, auths, num_threads=1):
        if not isinstance(auths, Authorizations):
            auths = Authorizations(auths)
        self.connector = connector
        self.table = table
        self.auths = auths
        self.num_threads = num_threads

        self.ranges = [Range()]
        self.columns = set()
        self.families = set()
        self.scan_iterators = []
        self.closed = False

    def set_ranges(self, ranges):
        ranges = list(ranges)
        if not ranges:
            raise KVError('at least one range is required')
        self.ranges = ranges

    def fetch_column(self, cf, cq):
        self.columns.add((cf, cq))

    def fetch_column_family(self, cf):
        self.families.add(cf)

    def add_scan_iterator(self, setting):
        for existing in self.scan_iterators:
            if existing.name == setting.name:
                raise KVError('iterator %r already added' % setting.name)
        self.scan_iterators.append(setting)

    def close(self):
        self.closed = True

    def wants(self, key):
        if not self.columns and not self.families:
            return True
        return (key.cf in self.families or
                (key.cf, key.cq) in self.columns)

    def _filtered(self):
        for rng in sorted(self.ranges,
                          key=lambda r: r.start or ''):
            for cell in self.connector.read(self.table, rng):
                if self.closed:
                    raise KVError('scanner for %r is closed' % self.table)
                key = cell.key
                if self.wants(key) and visible(key.visibility, self.auths):
                    yield cell

    def __iter__(self):
        if self.closed:
            raise KVError('scanner for %r is closed' % self.table)
        settings = self.connector.get_iterators(self.table, SCAN)
        settings = settings + self.scan_iterators
        return iter(apply_iterators(settings, self._filtered()))


class Connector(object):
    """
    Sorted key-value store connector superclass.
    """

    def create_table(self, table, limit_versions=True):
        """
        Create ``table``. Unless ``limit_versions`` is False, a
        ``VersioningIterator`` keeping the newest cell per column is attached
        to all scopes.
        """
        if self.table_exists(table):
            raise TableExistsError(table)
        log.info('Creating table %r', table)
        self._create(table)
        if limit_versions:
            setting = IteratorSetting(20, 'vers', iterators.VersioningIterator,
                                      {'max_versions': 1})
            self._attach(table, setting, all_scopes)

    def attach_iterator(self, table, setting, scopes=all_scopes):
        self.check_table(table)
        for scope in scopes:
            for existing in self.get_iterators(table, scope):
                if existing.name == setting.name:
                    raise KVError('iterator %r already attached to %r' %
                                  (setting.name, table))
        log.info('Attaching %r to %r for %s', setting, table,
                 ', '.join(scopes))
        self._attach(table, setting, tuple(scopes))

    def check_table(self, table):
        if not self.table_exists(table):
            raise TableNotFoundError(table)

    def create_batch_writer(self, table, max_memory, max_latency,
                            max_write_threads):
        self.check_table(table)
        return BatchWriter(self, table, max_memory, max_latency,
                           max_write_threads)

    def create_batch_scanner(self, table, auths, num_threads=1):
        self.check_table(table)
        return Scanner(self, table, auths, num_threads)

    def read(self, table, rng):
        self.check_table(table)
        return self._read(table, rng)

    def write_batch(self, table, cells):
        """
        Sort a batch of cells, run it through the table's minor compaction
        iterators and write the result.
        """
        self.check_table(table)
        cells = sorted(cells, key=lambda cell: sort_key(cell.key))
        cells = list(apply_iterators(self.get_iterators(table, MINC), cells))
        self._write(table, cells)

    def compact(self, table):
        """
        Rewrite every cell of ``table`` through its major compaction
        iterators.
        """
        self.check_table(table)
        cells = list(apply_iterators(self.get_iterators(table, MAJC),
                                     self._read(table, Range())))
        log.info('Compacted %r to %d cells', table, len(cells))
        self._replace(table, cells)
