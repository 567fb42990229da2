import time
import logging


log = logging.getLogger(__name__)


class Worker(object):
    """
    Drains a metric log into a ``MetricStore``, saving in batches of
    ``batch_size``.
    """

    def __init__(self, log, store, batch_size=500, stats_every=5000):
        self.log = log
        self.store = store
        self.batch_size = batch_size
        self.stats_every = stats_every

        self.last_live_ts = None
        self.last_num_metrics = None

    def dump_stats(self, num_metrics, metric_ts):
        live_ts = time.time()
        if self.last_live_ts:
            live_elapsed = live_ts - self.last_live_ts
            rate = ((num_metrics - self.last_num_metrics) /
                    float(live_elapsed or 1e-6))
            secs_behind = live_ts - (metric_ts / 1000.0)

            log.info('Saved %d metrics, %0.1f /sec, %d secs behind',
                     num_metrics, rate, secs_behind)

        self.last_live_ts = live_ts
        self.last_num_metrics = num_metrics

    def run(self, **kwargs):
        """
        Process the log until it is exhausted, passing ``kwargs`` through to
        its ``process()`` method. Return the number of metrics saved.
        """
        log.info('Worker started processing.')

        batch = []
        num_metrics = 0
        for ii, metric in enumerate(self.log.process(**kwargs)):
            # None means the log is idle: save what we have.
            if metric is not None:
                batch.append(metric)
            if batch and (metric is None or len(batch) >= self.batch_size):
                self.store.save(batch)
                num_metrics += len(batch)
                batch = []
            if metric is not None and (ii % self.stats_every) == 0:
                self.dump_stats(num_metrics, metric.timestamp)

        if batch:
            self.store.save(batch)
            num_metrics += len(batch)

        log.info('Worker finished processing %d metrics.', num_metrics)
        return num_metrics
