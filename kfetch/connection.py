import contextlib
import logging
import socket
import struct
import sys

from tornado import ioloop, iostream, gen, concurrent

from kfetch.exc import (
    KFetchError, BrokerConnectionError, UnhandledResponseError
)
from kfetch.protocol import fetch


log = logging.getLogger(__name__)

# all messages start with a 4-byte signed integer representing raw payload size
size_struct = struct.Struct("!i")
# all responses start with a 4-byte correlation ID to match with the request
correlation_struct = struct.Struct("!i")

response_classes = {
    "fetch": fetch.FetchResponse,
}


class Connection(object):
    """
    This class represents a single connection to a single broker host.

    Does not protect against any exceptions when connecting, those are expected
    to be handled by the owning session.

    The main use of this class is the `send()` method, used to send protocol
    request classes over the wire.

    .. note::
      Correlation ids are only meaningful on a single connection.  Each
      pending request is keyed on its id here, and a response is only ever
      parsed against the request whose id it echoes.
    """
    def __init__(self, host, port):
        self.host = host
        self.port = int(port)

        self.stream = None
        self.closing = False

        self.pending = {}

    @gen.coroutine
    def connect(self):
        """
        Connects to the broker host and fires the ``read_loop`` callback.

        The socket is wrapped in a tornado ``iostream.IOStream`` to take
        advantage of its handy async methods.
        """
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM, 0)
        self.stream = iostream.IOStream(sock)

        log.info("Connecting to broker %s:%d", self.host, self.port)
        yield self.stream.connect((self.host, self.port))

        ioloop.IOLoop.current().add_callback(self.read_loop)

    def close(self):
        """
        Sets the ``closing`` attribute to ``True`` and calls ``close()`` on the
        underlying stream.
        """
        self.closing = True
        if self.stream is not None:
            self.stream.close()

    @contextlib.contextmanager
    def socket_error_handling(self, failure_message):
        """
        helper contextmanager for handling errors during IOStream operations.

        Handles the StreamClosedError case by setting the ``closing`` flag and
        failing any pending futures, logs any unexpected exceptions with a
        failure message.
        """
        try:
            yield
        except iostream.StreamClosedError:
            self.closing = True
            self.fail_pending()
        except Exception:
            if not self.closing:
                log.exception(failure_message)
            self.abort()

    def send(self, request):
        """
        Sends a serialized request to the broker and returns a pending future.

        If any error occurs when writing immediately or asynchronously, the
        `abort()` method is called.

        The retured ``Future`` is stored in the ``self.pending`` dictionary
        along with the request, keyed on correlation id, so that clients can
        say

          ``response = yield conn.send(request)``

        and expect the correctly correlated response (or a raised exception)
        regardless of when the broker responds.
        """
        f = concurrent.Future()

        if self.closing:
            f.set_exception(BrokerConnectionError(self.host, self.port))
            return f

        if request.api not in response_classes:
            f.set_exception(UnhandledResponseError(request.api))
            return f

        payload = request.serialize()

        self.pending[request.correlation_id] = (request, f)

        def handle_write(write_future):
            with self.socket_error_handling("Error writing to socket."):
                write_future.result()

        with self.socket_error_handling("Error writing to socket."):
            self.stream.write(payload).add_done_callback(handle_write)

        return f

    @gen.coroutine
    def read_loop(self):
        """
        Infinite loop that reads frames off of the socket while not closed.

        Each frame received is handed to `dispatch()` to resolve the pending
        Future it belongs to.

        This is never used directly and is fired as a separate callback on the
        I/O loop via the `connect()` method.
        """
        while not self.closing:
            with self.socket_error_handling("Error reading from socket."):
                frame = yield self.read_frame()
                self.dispatch(frame)

    def dispatch(self, frame):
        """
        Parses a raw response frame and resolves the matching pending Future.

        The correlation id is peeked at to find the originating request, then
        the api's response class parses the full frame against that request's
        id.  Parse errors are set on the Future rather than raised here so
        that only the one request fails.

        Frames too short to hold a correlation id, or with one matching no
        pending request, are logged and dropped.
        """
        if len(frame) < size_struct.size + correlation_struct.size:
            log.error(
                "Dropping %d byte response from %s:%s, too short for a"
                " correlation id", len(frame), self.host, self.port
            )
            return

        correlation_id = correlation_struct.unpack_from(
            frame, size_struct.size
        )[0]

        if correlation_id not in self.pending:
            log.error(
                "Dropping response from %s:%s with unknown correlation id %s",
                self.host, self.port, correlation_id
            )
            return

        request, f = self.pending.pop(correlation_id)

        try:
            response = response_classes[request.api].deserialize(
                frame, request.correlation_id
            )
        except KFetchError as e:
            log.error("Error parsing %s response: %s", request.api, e)
            f.set_exception(e)
            return

        f.set_result(response)

    def abort(self):
        """
        Aborts a connection and puts all pending futures into an error state.

        If ``sys.exc_info()`` is set (i.e. this is being called in an exception
        handler) then pending futures will have that exc info set.  Otherwise
        a ``BrokerConnectionError`` is used.
        """
        if self.closing:
            return

        log.warning("Aborting connection to %s:%s", self.host, self.port)

        self.close()
        self.fail_pending(sys.exc_info())

    def fail_pending(self, exc_info=None):
        """
        Empties ``self.pending``, failing each future with the given exc info.

        Without an ``exc_info`` (or outside of an exception handler) a
        ``BrokerConnectionError`` is set instead.
        """
        while self.pending:
            _, (_, pending) = self.pending.popitem()
            if pending.done():
                continue
            if exc_info and any(exc_info):
                concurrent.future_set_exc_info(pending, exc_info)
            else:
                pending.set_exception(
                    BrokerConnectionError(self.host, self.port)
                )

    @gen.coroutine
    def read_frame(self):
        """
        Reads a single full response frame off of the stream.

        Works by leveraging the ``IOStream.read_bytes()`` method: first the
        4-byte size of the payload is pulled, then the payload itself.  The
        returned frame includes the size bytes.
        """
        raw_size = yield self.stream.read_bytes(size_struct.size)
        size = size_struct.unpack(raw_size)[0]

        raw_payload = yield self.stream.read_bytes(size)

        raise gen.Return(raw_size + raw_payload)
