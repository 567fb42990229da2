from unittest import TestCase

from metricstore.kv.base import (Mutation, Range, IteratorSetting, Key, Cell,
                                 SCAN, MINC, MAJC, all_scopes)
from metricstore.kv.errors import (KVError, TableExistsError,
                                   TableNotFoundError, MutationsRejectedError)
from metricstore.kv.iterators import (SummingCombiner, RegExFilter,
                                      VersioningIterator, CombinerError)
from metricstore.kv.sql import SQLConnector

from .base import MemoryConnectorMixin, SQLConnectorMixin


def put(writer, row, cf, cq, value, ts=1, visibility=''):
    m = Mutation(row)
    m.put(cf, cq, visibility, ts, value)
    writer.add_mutation(m)


def summing(columns, priority=10, name='stats'):
    setting = IteratorSetting(priority, name, SummingCombiner)
    SummingCombiner.set_columns(setting, columns)
    SummingCombiner.set_encoding_type(setting, 'STRING')
    return setting


def values(scanner):
    return [(cell.key.row, cell.key.cf, cell.key.cq, cell.value)
            for cell in scanner]


class ConnectorTests(object):

    def setUp(self):
        self.conn = self.make_connector()

    def writer(self, table, max_memory=100000, max_latency=100000):
        return self.conn.create_batch_writer(table, max_memory, max_latency, 1)

    def scanner(self, table, auths=()):
        return self.conn.create_batch_scanner(table, auths, 1)

    def test_create_table(self):
        self.assertFalse(self.conn.table_exists('t'))
        self.conn.create_table('t')
        self.assertTrue(self.conn.table_exists('t'))
        with self.assertRaises(TableExistsError):
            self.conn.create_table('t')

    def test_missing_table(self):
        with self.assertRaises(TableNotFoundError):
            self.writer('nope')
        with self.assertRaises(TableNotFoundError):
            self.scanner('nope')
        with self.assertRaises(TableNotFoundError):
            self.conn.attach_iterator('nope', summing(['A']))

    def test_sorted_scan(self):
        self.conn.create_table('t')
        w = self.writer('t')
        put(w, 'b', 'f', 'q', '2')
        put(w, 'a', 'f', 'q2', '1')
        put(w, 'a', 'f', 'q1', '0')
        put(w, 'c', 'f', 'q', '3')
        w.flush()
        self.assertEqual(values(self.scanner('t')),
                         [('a', 'f', 'q1', '0'),
                          ('a', 'f', 'q2', '1'),
                          ('b', 'f', 'q', '2'),
                          ('c', 'f', 'q', '3')])

    def test_range(self):
        self.conn.create_table('t')
        w = self.writer('t')
        for row in ['a', 'b', 'c', 'd']:
            put(w, row, 'f', 'q', row)
        w.flush()
        s = self.scanner('t')
        s.set_ranges([Range('b', 'c')])
        self.assertEqual([v[0] for v in values(s)], ['b', 'c'])

    def test_bad_range(self):
        with self.assertRaises(KVError):
            Range('z', 'a')

    def test_versioning_by_default(self):
        self.conn.create_table('t')
        w = self.writer('t')
        put(w, 'a', 'f', 'q', 'old', ts=1)
        w.flush()
        put(w, 'a', 'f', 'q', 'new', ts=2)
        w.flush()
        self.assertEqual(values(self.scanner('t')), [('a', 'f', 'q', 'new')])

    def test_unlimited_versions(self):
        self.conn.create_table('t', limit_versions=False)
        w = self.writer('t')
        put(w, 'a', 'f', 'q', 'old', ts=1)
        put(w, 'a', 'f', 'q', 'new', ts=2)
        w.flush()
        self.assertEqual([v[3] for v in values(self.scanner('t'))],
                         ['new', 'old'])

    def test_combiner_across_batches(self):
        self.conn.create_table('t', limit_versions=False)
        self.conn.attach_iterator('t', summing(['A']))
        w = self.writer('t')
        put(w, 'r', 'A', 'q', '5', ts=1)
        put(w, 'r', 'A', 'q', '7', ts=2)
        w.flush()
        put(w, 'r', 'A', 'q', '-2', ts=3)
        put(w, 'r', 'B', 'q', '1', ts=1)
        put(w, 'r', 'B', 'q', '1', ts=2)
        w.flush()
        self.assertEqual(values(self.scanner('t')),
                         [('r', 'A', 'q', '10'),
                          ('r', 'B', 'q', '1'),
                          ('r', 'B', 'q', '1')])

    def test_combiner_keeps_visibilities_apart(self):
        self.conn.create_table('t', limit_versions=False)
        self.conn.attach_iterator('t', summing(['A']))
        w = self.writer('t')
        put(w, 'r', 'A', 'q', '1', visibility='x')
        put(w, 'r', 'A', 'q', '2', visibility='y')
        put(w, 'r', 'A', 'q', '3', visibility='x')
        w.flush()
        self.assertEqual([v[3] for v in values(self.scanner('t', ['x']))],
                         ['4'])
        self.assertEqual([v[3] for v in values(self.scanner('t', ['x', 'y']))],
                         ['4', '2'])

    def test_minor_compaction_combines_batch(self):
        self.conn.create_table('t', limit_versions=False)
        self.conn.attach_iterator('t', summing(['A']), [MINC])
        w = self.writer('t')
        for ii in range(5):
            put(w, 'r', 'A', 'q', '1', ts=ii)
        w.flush()
        self.assertEqual(values(self.scanner('t')), [('r', 'A', 'q', '5')])

    def test_compact(self):
        self.conn.create_table('t', limit_versions=False)
        self.conn.attach_iterator('t', summing(['A']), [SCAN, MAJC])
        w = self.writer('t')
        for ii in range(3):
            put(w, 'r', 'A', 'q', '2', ts=ii)
            w.flush()
        raw = self.conn.create_batch_scanner('t', (), 1)
        self.assertEqual(len(list(self.conn.read('t', Range()))), 3)
        self.conn.compact('t')
        self.assertEqual(len(list(self.conn.read('t', Range()))), 1)
        self.assertEqual(values(raw), [('r', 'A', 'q', '6')])

    def test_combiner_non_numeric(self):
        self.conn.create_table('t', limit_versions=False)
        self.conn.attach_iterator('t', summing(['A']), [SCAN])
        w = self.writer('t')
        put(w, 'r', 'A', 'q', 'abc')
        w.flush()
        with self.assertRaises(CombinerError):
            list(self.scanner('t'))

    def test_duplicate_iterator_name(self):
        self.conn.create_table('t')
        self.conn.attach_iterator('t', summing(['A']))
        with self.assertRaises(KVError):
            self.conn.attach_iterator('t', summing(['B']))

    def test_fetch_columns(self):
        self.conn.create_table('t')
        w = self.writer('t')
        put(w, 'r', 'A', 'x', '1')
        put(w, 'r', 'A', 'y', '2')
        put(w, 'r', 'B', 'x', '3')
        put(w, 'r', 'C', 'z', '4')
        w.flush()

        s = self.scanner('t')
        s.fetch_column('A', 'y')
        self.assertEqual([v[3] for v in values(s)], ['2'])

        s = self.scanner('t')
        s.fetch_column_family('B')
        s.fetch_column('C', 'z')
        self.assertEqual([v[3] for v in values(s)], ['3', '4'])

    def test_regex_filter(self):
        self.conn.create_table('t')
        w = self.writer('t')
        put(w, 'r', 'A', 'g1\x00n1', '1')
        put(w, 'r', 'A', 'g1\x00n2', '2')
        put(w, 'r', 'A', 'g10\x00n1', '3')
        w.flush()

        s = self.scanner('t')
        setting = IteratorSetting(9, 'regex', RegExFilter)
        RegExFilter.set_regexs(setting, cq_regex='g1\x00.*')
        s.add_scan_iterator(setting)
        self.assertEqual([v[3] for v in values(s)], ['1', '2'])

    def test_bad_regex(self):
        setting = IteratorSetting(9, 'regex', RegExFilter)
        with self.assertRaises(KVError):
            RegExFilter.set_regexs(setting, cq_regex='(')

    def test_visibility_filtering(self):
        self.conn.create_table('t')
        w = self.writer('t')
        put(w, 'a', 'f', 'q', 'public')
        put(w, 'b', 'f', 'q', 'secret', visibility='secret')
        put(w, 'c', 'f', 'q', 'both', visibility='secret&admin')
        w.flush()
        self.assertEqual([v[3] for v in values(self.scanner('t'))],
                         ['public'])
        self.assertEqual([v[3] for v in values(self.scanner('t', ['secret']))],
                         ['public', 'secret'])
        self.assertEqual(
            [v[3] for v in values(self.scanner('t', ['secret', 'admin']))],
            ['public', 'secret', 'both'])

    def test_scan_restarts(self):
        self.conn.create_table('t')
        w = self.writer('t')
        put(w, 'a', 'f', 'q', '1')
        w.flush()
        s = self.scanner('t')
        self.assertEqual(values(s), values(s))

    def test_closed_scanner(self):
        self.conn.create_table('t')
        s = self.scanner('t')
        s.close()
        with self.assertRaises(KVError):
            iter(s)

    def test_writer_flushes_on_memory(self):
        self.conn.create_table('t')
        w = self.writer('t', max_memory=30)
        put(w, 'a', 'f', 'q', '1')
        self.assertEqual(values(self.scanner('t')), [])
        put(w, 'b', 'f', 'q', '2' * 20)
        self.assertEqual(len(values(self.scanner('t'))), 2)
        self.assertEqual(w.buffered, [])

    def test_writer_flushes_on_latency(self):
        self.conn.create_table('t')
        w = self.writer('t', max_latency=0)
        put(w, 'a', 'f', 'q', '1')
        self.assertEqual(len(values(self.scanner('t'))), 1)

    def test_closed_writer(self):
        self.conn.create_table('t')
        w = self.writer('t')
        put(w, 'a', 'f', 'q', '1')
        w.close()
        self.assertEqual(len(values(self.scanner('t'))), 1)
        with self.assertRaises(MutationsRejectedError):
            put(w, 'b', 'f', 'q', '1')
        with self.assertRaises(MutationsRejectedError):
            w.flush()
        w.close()

    def test_get_iterators_by_scope(self):
        self.conn.create_table('t', limit_versions=False)
        self.conn.attach_iterator('t', summing(['A']), [SCAN])
        self.assertEqual([s.name for s in self.conn.get_iterators('t', SCAN)],
                         ['stats'])
        self.assertEqual(self.conn.get_iterators('t', MAJC), [])

    def test_list_tables(self):
        self.conn.create_table('b')
        self.conn.create_table('a')
        self.assertEqual(self.conn.list_tables(), ['a', 'b'])


class TestMemoryConnector(MemoryConnectorMixin, ConnectorTests, TestCase):
    pass


class TestSQLConnector(SQLConnectorMixin, ConnectorTests, TestCase):

    def test_definitions_persist(self):
        self.conn.create_table('t', limit_versions=False)
        self.conn.attach_iterator('t', summing(['A', 'B']), all_scopes)
        w = self.writer('t')
        put(w, 'r', 'A', 'q', '3', ts=1)
        put(w, 'r', 'A', 'q', '4', ts=2)
        w.flush()

        other = SQLConnector(None, engine=self.conn.engine)
        self.assertTrue(other.table_exists('t'))
        settings = other.get_iterators('t', SCAN)
        self.assertEqual(len(settings), 1)
        self.assertIs(settings[0].iterator_class, SummingCombiner)
        self.assertEqual(settings[0].options['columns'], ['A', 'B'])
        scanner = other.create_batch_scanner('t', (), 1)
        self.assertEqual(values(scanner), [('r', 'A', 'q', '7')])

    def test_nul_in_keys(self):
        self.conn.create_table('t')
        w = self.writer('t')
        put(w, 'a\x00b', 'f', 'q', '1')
        put(w, 'a', 'f', 'q', '2')
        put(w, 'a\x01', 'f', 'q', '3')
        w.flush()
        self.assertEqual([v[0] for v in values(self.scanner('t'))],
                         ['a', 'a\x00b', 'a\x01'])


class TestIterators(TestCase):

    def cell(self, row, value, ts=1, cf='A'):
        return Cell(Key(row, cf, 'q', '', ts), value)

    def test_versioning(self):
        it = VersioningIterator({'max_versions': 2})
        cells = [self.cell('a', '3', 3), self.cell('a', '2', 2),
                 self.cell('a', '1', 1), self.cell('b', '1')]
        self.assertEqual([c.value for c in it.apply(cells)], ['3', '2', '1'])

    def test_summing_all_columns(self):
        setting = IteratorSetting(10, 'stats', SummingCombiner)
        SummingCombiner.set_combine_all_columns(setting)
        it = setting.build()
        cells = [self.cell('a', '3', 3, cf='X'), self.cell('a', '2', 2, cf='X')]
        out = list(it.apply(cells))
        self.assertEqual(len(out), 1)
        self.assertEqual(out[0].value, '5')
        self.assertEqual(out[0].key.timestamp, 3)

    def test_summing_requires_columns(self):
        with self.assertRaises(CombinerError):
            SummingCombiner({})

    def test_summing_encoding(self):
        with self.assertRaises(CombinerError):
            SummingCombiner({'all': True, 'type': 'VARLEN'})

    def test_regex_or_and_substring(self):
        f = RegExFilter({'row_regex': 'x', 'value_regex': '9',
                         'or': True, 'match_substring': True})
        cells = [self.cell('axb', '1'), self.cell('b', '19'),
                 self.cell('c', '2')]
        self.assertEqual([c.key.row for c in f.apply(cells)], ['axb', 'b'])

    def test_iterator_by_name(self):
        setting = IteratorSetting(5, 'f', 'RegExFilter')
        self.assertIs(setting.iterator_class, RegExFilter)
        with self.assertRaises(KVError):
            IteratorSetting(5, 'f', 'NoSuchIterator')
