import logging
import logging.config
import sys
import argparse
from threading import Thread, Event

import zmq

from metricstore.kv.sql import SQLConnector
from metricstore.log.remote import RemoteLog, DEFAULT_REDIS_KEY
from metricstore.store import MetricStore, DEFAULT_TABLE_NAME
from metricstore.timeunit import time_units
from metricstore.worker import Worker

log = logging.getLogger(__name__)


ctx = zmq.Context()
default_bind = 'tcp://127.0.0.1:5556'


class StoreService(object):
    """
    Exposes the read side of a ``MetricStore`` with JSON-friendly arguments
    and results. Metrics are written through the Redis queue, so only the
    worker thread ever uses the store's writers.
    """

    def __init__(self, store):
        self.store = store

    def query(self, start, end, group, type, name=None, unit=None,
              auths=()):
        results = self.store.query(start, end, group, type, name=name,
                                   unit=unit, auths=auths)
        with results:
            return [metric.to_dict() for metric in results]

    def units(self):
        return [unit.name for unit in time_units]


class Server(Thread):

    def __init__(self, service, bind=default_bind, poll_timeout=100):
        Thread.__init__(self)
        self.service = service
        self.bind = bind
        self.poll_timeout = poll_timeout
        self.running = False

    def run(self):
        s = ctx.socket(zmq.REP)
        s.setsockopt(zmq.LINGER, 0)
        s.bind(self.bind)
        poller = zmq.Poller()
        poller.register(s, zmq.POLLIN)

        self.running = True
        try:
            while self.running:
                if poller.poll(self.poll_timeout):
                    self.handle_zmq(s)
        finally:
            s.close()

    def kill(self):
        self.running = False

    def handle_zmq(self, sock):
        try:
            req = sock.recv_json()
            resp = self.handle(req)
            msg = ['ok', resp]
        except Exception as e:
            log.exception('Request failed: %r', e)
            msg = ['error', '%s: %s' % (e.__class__.__name__, str(e))]
        sock.send_json(msg)

    def handle(self, req):
        log.info('Handling request: %r', req)
        method, args, kwargs = req
        if method.startswith('_') or not hasattr(self.service, method):
            raise AttributeError('no such method: %r' % method)
        resp = getattr(self.service, method)(*args, **kwargs)
        log.info('Returning %d bytes of response',
                 len(repr(resp)))
        return resp


def logging_config(verbose=False, filename=None):
    handlers = {
        'console': {
            'class': 'logging.StreamHandler',
            'stream': sys.stderr,
            'formatter': 'generic',
            'level': logging.DEBUG if verbose else logging.WARN,
        },
        'null': {
            'class': 'logging.NullHandler',
        }
    }

    if filename:
        handlers['root_file'] = {
            'class': 'logging.FileHandler',
            'formatter': 'generic',
            'level': 'NOTSET',
            'filename': filename,
        }

    return {
        'version': 1,
        'formatters': {
            'generic': {
                'format':
                "%(asctime)s %(levelname)-5.5s [%(name)s] %(message)s"
            },
        },
        'handlers': handlers,
        'loggers': {
            'metricstore': {
                'propagate': True,
                'level': 'NOTSET',
                'handlers': list(handlers.keys()),
            },
        },
        'root': {
            'level': 'DEBUG',
            'handlers': ['null']
        }
    }


def load_args_config(args):
    return dict(verbose=args.verbose,
                error_log_path=args.error_log_path,
                sqlalchemy_url=args.url,
                table_name=args.table,
                redis_key=args.redis_key,
                bind=args.bind)


def load_python_config(namespace):
    mod_name, attr_name = namespace.rsplit('.', 1)
    __import__(mod_name)
    mod = sys.modules[mod_name]
    return dict(getattr(mod, attr_name))


def main(argv=None, killed_event=None):
    p = argparse.ArgumentParser(
        description='Serve metric queries, and save metrics from a Redis '
        'queue.')

    p.add_argument('-v', '--verbose', dest='verbose', action='store_true',
                   default=False, help='Print detailed output')
    p.add_argument('--log', dest='error_log_path', type=str,
                   help='Path to error/debug log')
    p.add_argument('-u', '--url', dest='url', type=str,
                   default='sqlite:///metricstore.db',
                   help='SQL store URL')
    p.add_argument('-t', '--table', dest='table', type=str,
                   default=DEFAULT_TABLE_NAME,
                   help='Base name of the metric tables')
    p.add_argument('-k', '--redis-key', dest='redis_key', type=str,
                   default=None,
                   help='Redis list to save metrics from (default: %s)' %
                   DEFAULT_REDIS_KEY, nargs='?', const=DEFAULT_REDIS_KEY)
    p.add_argument('--bind', type=str,
                   default=default_bind,
                   help='ZeroMQ socket description to bind to')

    p.add_argument('--config', type=str,
                   help='Python namespace to use for configuration')

    args = p.parse_args(argv)

    if args.config:
        config = load_python_config(args.config)
    else:
        config = load_args_config(args)

    logging.config.dictConfig(logging_config(config.pop('verbose', False),
                                             config.pop('error_log_path',
                                                        None)))

    killed_event = killed_event or Event()

    connector = SQLConnector(config['sqlalchemy_url'])
    store = MetricStore(connector,
                        table_name=config.get('table_name',
                                              DEFAULT_TABLE_NAME))

    server = Server(StoreService(store),
                    bind=config.get('bind', default_bind))
    server.start()

    try:
        redis_key = config.get('redis_key')
        if redis_key:
            worker = Worker(RemoteLog(redis_key), store)
            worker.run(stay_alive=True, killed_event=killed_event)
        else:
            killed_event.wait()
    finally:
        server.kill()
        server.join()
        store.shutdown()
