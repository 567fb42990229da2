import logging

from collections import deque

log = logging.getLogger(__name__)


class MemoryLog(object):
    """
    An in-memory queue of metrics waiting to be saved, intended for testing
    only. Nothing survives a restart.
    """
    def __init__(self):
        self.q = deque()

    def write(self, *metrics):
        log.debug('Writing metrics: %r', metrics)
        self.q.extend(metrics)

    def process(self):
        log.debug('Swapping out log.')
        to_process = self.q
        self.q = deque()
        for metric in to_process:
            yield metric

    def purge(self):
        log.info('Purging log.')
        self.q = deque()
