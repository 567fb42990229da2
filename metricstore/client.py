import argparse
import code

import zmq

default_bind = 'tcp://127.0.0.1:5556'


ctx = zmq.Context()


class ServerError(Exception):
    pass


class TimeoutError(Exception):
    pass


class Client(object):
    """
    Calls methods on a remote ``StoreService``. Any attribute is a remote
    method, e.g. ``client.query(0, 2000, 'g1', 't1', unit='HOURS')``.
    """

    def __init__(self, connect=default_bind, wait=3000):
        self.sock = ctx.socket(zmq.REQ)
        self.sock.setsockopt(zmq.LINGER, 0)
        self.sock.connect(connect)

        self.poller = zmq.Poller()
        self.poller.register(self.sock, zmq.POLLIN)

        self.wait = wait

    def __getattr__(self, name):
        if name.startswith('_'):
            raise AttributeError(name)

        def rpc_method(*args, **kwargs):
            req = [name, args, kwargs]
            self.sock.send_json(req)

            if self.poller.poll(self.wait):
                status, resp = self.sock.recv_json()
                if status == 'ok':
                    return resp
                else:
                    raise ServerError(resp)
            else:
                raise TimeoutError('Timed out after %d ms waiting for reply' %
                                   self.wait)
        return rpc_method

    def close(self):
        self.sock.close()


def main(argv=None):
    p = argparse.ArgumentParser(description='Run a metric store client.')
    p.add_argument('--connect', type=str,
                   default=default_bind,
                   help='ZeroMQ socket description to connect to')
    args = p.parse_args(argv)

    client = Client(args.connect)
    code.interact("The 'client' object is available for queries.",
                  local=dict(client=client))
