import json
import logging
from contextlib import contextmanager

from sqlalchemy import (MetaData, Table, Column, Index, types, create_engine,
                        select)
from sqlalchemy.exc import SQLAlchemyError

from .base import Connector, Cell, Key, IteratorSetting
from .errors import KVError


log = logging.getLogger(__name__)


class EncodedText(types.TypeDecorator):
    """
    Text stored as UTF-8 bytes, so that comparisons and ordering at the
    database level are by code point and embedded NUL characters survive.
    """
    impl = types.LargeBinary
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return value.encode('utf-8')

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return bytes(value).decode('utf-8')


@contextmanager
def translate_errors():
    try:
        yield
    except SQLAlchemyError as e:
        raise KVError('%s: %s' % (e.__class__.__name__, e)) from e


class SQLConnector(Connector):
    """
    A sorted key-value store persisted through SQLAlchemy. Table definitions
    and attached iterators are stored alongside the cells, so a connector
    opened later on the same database sees them.

    Every mutation is stored as its own row after minor compaction of its
    batch. Combining across batches happens at scan time, or permanently on
    ``compact()``.
    """
    def __init__(self, sqlalchemy_url, pool_recycle=3600, engine=None):
        if engine is None:
            engine = create_engine(sqlalchemy_url, pool_recycle=pool_recycle)
        self.engine = engine
        self.metadata = MetaData()

        self.tables_table = Table(
            'kv_tables',
            self.metadata,
            Column('name', types.String(255), primary_key=True),
            mysql_engine='InnoDB')

        self.iterators_table = Table(
            'kv_iterators',
            self.metadata,
            Column('table_name', types.String(255), primary_key=True),
            Column('name', types.String(255), primary_key=True),
            Column('priority', types.Integer, nullable=False),
            Column('iterator_class', types.String(255), nullable=False),
            Column('options', types.Text, nullable=False),
            Column('scopes', types.String(255), nullable=False),
            mysql_engine='InnoDB')

        self.cells_table = Table(
            'kv_cells',
            self.metadata,
            Column('id', types.Integer, primary_key=True),
            Column('table_name', types.String(255), nullable=False),
            Column('row', EncodedText, nullable=False),
            Column('cf', EncodedText, nullable=False),
            Column('cq', EncodedText, nullable=False),
            Column('visibility', EncodedText, nullable=False),
            Column('timestamp', types.BigInteger, nullable=False),
            Column('value', EncodedText, nullable=False),
            Index('ix_kv_cells_table_row', 'table_name', 'row'),
            mysql_engine='InnoDB')

        with translate_errors():
            self.metadata.create_all(self.engine)

    def table_exists(self, table):
        t = self.tables_table
        with translate_errors(), self.engine.connect() as conn:
            q = select(t.c.name).where(t.c.name == table)
            return conn.execute(q).first() is not None

    def list_tables(self):
        t = self.tables_table
        with translate_errors(), self.engine.connect() as conn:
            return [name for name, in
                    conn.execute(select(t.c.name).order_by(t.c.name))]

    def _create(self, table):
        with translate_errors(), self.engine.begin() as conn:
            conn.execute(self.tables_table.insert().values(name=table))

    def _attach(self, table, setting, scopes):
        with translate_errors(), self.engine.begin() as conn:
            conn.execute(self.iterators_table.insert().values(
                table_name=table,
                name=setting.name,
                priority=setting.priority,
                iterator_class=setting.iterator_class.__name__,
                options=json.dumps(setting.options, sort_keys=True),
                scopes=','.join(scopes)))

    def get_iterators(self, table, scope):
        t = self.iterators_table
        q = select(t.c.name, t.c.priority, t.c.iterator_class, t.c.options,
                   t.c.scopes).where(t.c.table_name == table)
        with translate_errors(), self.engine.connect() as conn:
            rows = conn.execute(q).all()
        settings = []
        for name, priority, iterator_class, options, scopes in rows:
            if scope in scopes.split(','):
                settings.append(IteratorSetting(priority, name,
                                                iterator_class,
                                                json.loads(options)))
        return settings

    def _read(self, table, rng):
        t = self.cells_table
        q = select(t.c.row, t.c.cf, t.c.cq, t.c.visibility, t.c.timestamp,
                   t.c.value).where(t.c.table_name == table)
        if rng.start is not None:
            q = q.where(t.c.row >= rng.start)
        if rng.end is not None:
            q = q.where(t.c.row <= rng.end)
        q = q.order_by(t.c.row, t.c.cf, t.c.cq, t.c.visibility,
                       t.c.timestamp.desc(), t.c.id)

        with translate_errors(), self.engine.connect() as conn:
            for row, cf, cq, visibility, timestamp, value in conn.execute(q):
                yield Cell(Key(row, cf, cq, visibility, timestamp), value)

    def _insert(self, conn, table, cells):
        if not cells:
            return
        conn.execute(self.cells_table.insert(),
                     [{'table_name': table,
                       'row': key.row,
                       'cf': key.cf,
                       'cq': key.cq,
                       'visibility': key.visibility,
                       'timestamp': key.timestamp,
                       'value': value} for key, value in cells])

    def _write(self, table, cells):
        with translate_errors(), self.engine.begin() as conn:
            self._insert(conn, table, cells)

    def _replace(self, table, cells):
        t = self.cells_table
        with translate_errors(), self.engine.begin() as conn:
            conn.execute(t.delete().where(t.c.table_name == table))
            self._insert(conn, table, cells)
