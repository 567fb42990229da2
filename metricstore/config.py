class StoreConfig(object):
    """
    Batching parameters handed to the key-value store connector.

    :param max_query_threads:
        Number of threads a batch scanner may use.
    :param max_memory:
        Bytes of mutations a batch writer buffers before flushing.
    :param max_latency:
        Milliseconds a mutation may sit in a batch writer before flushing.
    :param max_write_threads:
        Number of threads a batch writer may use.
    """
    def __init__(self, max_query_threads=1, max_memory=100000, max_latency=100,
                 max_write_threads=10):
        self.max_query_threads = max_query_threads
        self.max_memory = max_memory
        self.max_latency = max_latency
        self.max_write_threads = max_write_threads

    def __repr__(self):
        return ('StoreConfig(max_query_threads=%r, max_memory=%r, '
                'max_latency=%r, max_write_threads=%r)' %
                (self.max_query_threads, self.max_memory, self.max_latency,
                 self.max_write_threads))
