import json
import logging

import redis

from metricstore.metric import Metric


log = logging.getLogger(__name__)


DEFAULT_REDIS_KEY = 'metricstore:log:queue'

STOP = 'STOP'


def make_redis(kwargs=None, **defaults):
    if kwargs is None:
        kwargs = {}
    for k in defaults:
        if k not in kwargs:
            kwargs[k] = defaults[k]
    return redis.Redis(**kwargs)


class RemoteLog(object):

    """Queues metrics in a Redis list for a worker to save."""

    def __init__(self, key=DEFAULT_REDIS_KEY, redis_kwargs=None, db=None):
        self.key = key
        self.db = db or make_redis(redis_kwargs, socket_timeout=5,
                                   decode_responses=True)
        self.running = False

    def write(self, *metrics):
        """Send ``metrics`` to the queue as one JSON entry."""
        self.db.rpush(self.key, json.dumps([m.to_dict() for m in metrics]))

    def send_command(self, command):
        self.db.rpush(self.key, command)

    def parse(self, entry):
        if isinstance(entry, bytes):
            entry = entry.decode('utf-8')
        return [Metric.from_dict(vals) for vals in json.loads(entry)]

    def process(self, stay_alive=False, killed_event=None, poll_timeout=1):
        """
        Yield queued metrics in order. Without ``stay_alive``, stop when the
        queue is empty. Otherwise block for new entries until ``STOP`` is
        received or ``killed_event`` is set, yielding None whenever
        ``poll_timeout`` seconds pass with nothing queued.
        """
        self.running = True
        while self.running:
            if killed_event and killed_event.is_set():
                break
            if stay_alive:
                item = self.db.blpop(self.key, timeout=poll_timeout)
                if item is None:
                    yield None
                    continue
                entry = item[1]
            else:
                entry = self.db.lpop(self.key)
                if entry is None:
                    break
            if entry in (STOP, STOP.encode('ascii')):
                log.info('Received stop command.')
                break
            for metric in self.parse(entry):
                yield metric
        self.running = False

    def stop(self):
        self.running = False
