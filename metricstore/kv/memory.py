import bisect
import logging

from .base import Connector, sort_key


log = logging.getLogger(__name__)


class MemoryConnector(Connector):
    """
    An in-process sorted key-value store, intended for testing and embedding.
    Nothing is persisted, and every version of every cell is kept until the
    table is compacted.
    """
    def __init__(self):
        self._cells = {}
        self._keys = {}
        self._iterators = {}

    def table_exists(self, table):
        return table in self._cells

    def list_tables(self):
        return sorted(self._cells)

    def _create(self, table):
        self._cells[table] = []
        self._keys[table] = []
        self._iterators[table] = []

    def _attach(self, table, setting, scopes):
        self._iterators[table].append((setting, scopes))

    def get_iterators(self, table, scope):
        self.check_table(table)
        return [setting for setting, scopes in self._iterators[table]
                if scope in scopes]

    def _read(self, table, rng):
        keys = self._keys[table]
        cells = self._cells[table]
        if rng.start is None:
            ii = 0
        else:
            ii = bisect.bisect_left(keys, (rng.start,))
        # Snapshot the slice so concurrent writes don't disturb a scan.
        for cell in cells[ii:]:
            if cell.key.row not in rng:
                break
            yield cell

    def _write(self, table, cells):
        keys = self._keys[table]
        stored = self._cells[table]
        for cell in cells:
            k = sort_key(cell.key)
            ii = bisect.bisect_right(keys, k)
            keys.insert(ii, k)
            stored.insert(ii, cell)

    def _replace(self, table, cells):
        self._cells[table] = list(cells)
        self._keys[table] = [sort_key(cell.key) for cell in cells]
