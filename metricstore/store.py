"""
Stores simple metric data in a sorted key-value store. Metrics are summed
into predefined time buckets as they are written, and are available to
queries immediately.

Each sample is written to two tables, once per time unit:

    Table            Row                  CF          CQ
    metrics          group DELIM revTS    'MINUTES'   type DELIM name
    metrics_reverse  type DELIM revTS     'MINUTES'   group DELIM name

and likewise for 'HOURS', 'DAYS' and 'MONTHS'. Values are decimal strings,
and both tables sum them with a ``SummingCombiner`` over the time unit
column families.
"""

import re
import logging

from .config import StoreConfig
from .kv.base import Mutation, Range, IteratorSetting, all_scopes
from .kv.errors import KVError
from .kv.iterators import SummingCombiner, RegExFilter
from .kv.visibility import ColumnVisibility
from .timeunit import MINUTES, time_units, to_millis, unit_for_name
from .transform import CloseableIterable, DecodeError, cell_to_metric
from .util import combine, default_string


log = logging.getLogger(__name__)


DEFAULT_TABLE_NAME = 'metrics'
REVERSE_SUFFIX = '_reverse'
DEFAULT_ITERATOR_PRIORITY = 10

# Values and their sums are signed 64-bit integers.
MIN_VALUE = -2 ** 63
MAX_VALUE = 2 ** 63 - 1

default_store_config = StoreConfig(max_query_threads=1, max_memory=100000,
                                   max_latency=100, max_write_threads=10)


class MetricStoreError(RuntimeError):
    pass


def resolve_unit(unit):
    if unit is None:
        return MINUTES
    if isinstance(unit, str):
        return unit_for_name(unit)
    return unit


class MetricIterable(CloseableIterable):

    def __iter__(self):
        try:
            for metric in CloseableIterable.__iter__(self):
                yield metric
        except (KVError, DecodeError) as e:
            raise MetricStoreError('%s: %s' % (e.__class__.__name__, e)) from e


class MetricStore(object):

    def __init__(self, connector, table_name=DEFAULT_TABLE_NAME, config=None):
        if connector is None:
            raise ValueError('connector is required')
        if not table_name:
            raise ValueError('table_name is required')

        self.connector = connector
        self.table_name = table_name
        self.reverse_table_name = table_name + REVERSE_SUFFIX
        self.config = config or default_store_config

        try:
            self.create_table(self.table_name)
            self.create_table(self.reverse_table_name)

            self.group_writer = self.create_writer(self.table_name)
            self.type_writer = self.create_writer(self.reverse_table_name)
        except KVError as e:
            raise MetricStoreError('%s: %s' % (e.__class__.__name__, e)) from e

    def create_writer(self, table_name):
        return self.connector.create_batch_writer(
            table_name,
            self.config.max_memory,
            self.config.max_latency,
            self.config.max_write_threads)

    def create_table(self, table_name):
        if not self.connector.table_exists(table_name):
            # No versioning iterator: every write to a bucket must be kept
            # for the combiner.
            self.connector.create_table(table_name, limit_versions=False)
            self.configure_table(table_name)

    def configure_table(self, table_name):
        """
        Attach a summing combiner over every time unit column family, for
        all scopes.
        """
        setting = IteratorSetting(DEFAULT_ITERATOR_PRIORITY, 'stats',
                                  SummingCombiner)
        SummingCombiner.set_columns(setting, time_units)
        SummingCombiner.set_encoding_type(setting, 'STRING')
        self.connector.attach_iterator(table_name, setting, all_scopes)

    def metric_scanner(self, start, end, group, type, name=None, unit=None,
                       auths=None):
        """
        Build a scanner over the type-indexed table for the buckets between
        ``start`` and ``end``, newest first.

        When ``name`` is given, only the single ``group DELIM name`` column
        is fetched. Otherwise the whole time unit column family is fetched
        and a qualifier regex restricts it to ``group``.
        """
        for arg, val in [('start', start), ('end', end), ('group', group),
                         ('type', type), ('auths', auths)]:
            if val is None:
                raise ValueError('%s is required' % arg)

        unit = resolve_unit(unit)
        start = to_millis(start)
        end = to_millis(end)

        try:
            scanner = self.connector.create_batch_scanner(
                self.reverse_table_name, auths,
                self.config.max_query_threads)

            # Reverse timestamps invert the order, so the end of the window
            # is the start of the range.
            scanner.set_ranges([Range(
                combine(type, unit.reverse_timestamp(end)),
                combine(type, unit.reverse_timestamp(start)))])

            if name is not None:
                scanner.fetch_column(unit.name, combine(group, name))
            else:
                scanner.fetch_column_family(unit.name)

                regex = IteratorSetting(DEFAULT_ITERATOR_PRIORITY - 1, 'regex',
                                        RegExFilter)
                RegExFilter.set_regexs(regex,
                                       cq_regex=combine(re.escape(group),
                                                        '.*'))
                scanner.add_scan_iterator(regex)

            return scanner

        except KVError as e:
            raise MetricStoreError('%s: %s' % (e.__class__.__name__, e)) from e

    def mutations(self, metric):
        """
        Build the group and type table mutations for every time unit bucket
        of ``metric``. Raises ValueError for a metric that cannot be stored.
        """
        if metric.timestamp is None:
            raise ValueError('metric has no timestamp: %r' % metric)
        value = metric.value
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError('metric value must be an integer: %r' % metric)
        if not MIN_VALUE <= value <= MAX_VALUE:
            raise ValueError('metric value out of range: %r' % metric)

        group = default_string(metric.group)
        type = default_string(metric.type)
        name = default_string(metric.name)
        visibility = ColumnVisibility(default_string(metric.visibility))
        timestamp = to_millis(metric.timestamp)
        value = str(value)

        group_mutations = []
        type_mutations = []
        for unit in time_units:
            reverse_ts = unit.reverse_timestamp(timestamp)

            group_mutation = Mutation(combine(group, reverse_ts))
            group_mutation.put(unit.name, combine(type, name),
                               visibility, timestamp, value)
            group_mutations.append(group_mutation)

            type_mutation = Mutation(combine(type, reverse_ts))
            type_mutation.put(unit.name, combine(group, name),
                              visibility, timestamp, value)
            type_mutations.append(type_mutation)
        return group_mutations, type_mutations

    def save(self, metrics):
        """
        Write every metric into each time unit bucket of both tables, then
        flush. ``None`` entries are skipped. The whole batch is validated
        before anything reaches the writers.

        :param metrics:
            Metrics to add.
        :type metrics:
            Iterable of ``Metric`` objects, or None.
        """
        try:
            group_mutations = []
            type_mutations = []
            for metric in metrics:
                if metric is None:
                    continue
                group_batch, type_batch = self.mutations(metric)
                group_mutations.extend(group_batch)
                type_mutations.extend(type_batch)

            log.debug('Saving %d metrics',
                      len(group_mutations) // len(time_units))

            for mutation in group_mutations:
                self.group_writer.add_mutation(mutation)
            for mutation in type_mutations:
                self.type_writer.add_mutation(mutation)

            self.group_writer.flush()
            self.type_writer.flush()

        except KVError as e:
            raise MetricStoreError('%s: %s' % (e.__class__.__name__, e)) from e

    def query(self, start, end, group, type, name=None, unit=None,
              auths=None):
        """
        Return the aggregated metrics for ``group`` and ``type`` in the
        ``unit`` buckets between ``start`` and ``end``, most recent bucket
        first. ``unit`` is a ``TimeUnit`` or its label, and defaults to
        ``MINUTES``.

        The result is lazy: each iteration runs a new scan. Close it (or use
        it as a context manager) when done.
        """
        unit = resolve_unit(unit)
        scanner = self.metric_scanner(start, end, group, type, name, unit,
                                      auths)
        return MetricIterable(scanner,
                              lambda cell: cell_to_metric(cell, unit))

    def shutdown(self):
        """
        Flush and close both writers.
        """
        try:
            self.group_writer.close()
            self.type_writer.close()
        except KVError as e:
            raise MetricStoreError('%s: %s' % (e.__class__.__name__, e)) from e
