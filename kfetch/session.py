import logging

from tornado import gen, iostream

from kfetch.constants import DEFAULT_KAFKA_PORT
from kfetch.exc import BrokerConnectionError

from .connection import Connection


log = logging.getLogger(__name__)


def parse_broker(broker):
    """
    Splits a "host:port" broker string, falling back to the default port.
    """
    if ":" in broker:
        host, port = broker.rsplit(":", 1)
    else:
        host, port = broker, DEFAULT_KAFKA_PORT

    return host, int(port)


class Session(object):
    """
    Class owning one ``Connection`` per broker endpoint.

    Connections are keyed off of "host:port" strings and made on first use.
    Picking which broker leads a given partition is left to the caller.
    """
    def __init__(self):
        self.conns = {}
        self.connecting = {}

    def __getitem__(self, broker):
        """
        Proxies to the ``__getitem__`` of the underlying conns dictionary.
        """
        return self.conns[broker]

    def __contains__(self, broker):
        """
        Proxies the ``__contains__`` method of the conns dictionary.
        """
        return broker in self.conns

    def __iter__(self):
        """
        Proxies the ``__iter__`` method of the conns dictionary.
        """
        return iter(self.conns)

    @gen.coroutine
    def get_connection(self, broker):
        """
        Returns a live connection to the broker, connecting if need be.

        Closed connections are replaced.  Concurrent callers asking for the
        same broker share a single connection attempt.  A failed attempt
        raises a ``BrokerConnectionError``.
        """
        host, port = parse_broker(broker)
        key = "%s:%d" % (host, port)

        conn = self.conns.get(key)
        if conn is not None and not conn.closing:
            raise gen.Return(conn)

        if key not in self.connecting:
            self.connecting[key] = self.connect(host, port)

        try:
            conn = yield self.connecting[key]
        finally:
            self.connecting.pop(key, None)

        self.conns[key] = conn

        raise gen.Return(conn)

    @gen.coroutine
    def connect(self, host, port):
        """
        Creates and connects a new ``Connection`` to the given host and port.
        """
        conn = Connection(host, port)

        try:
            yield conn.connect()
        except (iostream.StreamClosedError, OSError):
            log.warning("Could not connect to broker %s:%s", host, port)
            raise BrokerConnectionError(host, port)

        raise gen.Return(conn)

    @gen.coroutine
    def send(self, broker, request):
        """
        Sends a request to the given broker, returns the correlated response.
        """
        conn = yield self.get_connection(broker)

        response = yield conn.send(request)

        raise gen.Return(response)

    def stop(self):
        """
        Simple method that calls ``close()`` on each connection.
        """
        for conn in self.conns.values():
            conn.close()

        self.conns.clear()
