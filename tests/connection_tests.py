import struct

from tests import cases
from tests.cases.wire import frame_response, partition

from tornado import testing, iostream
from mock import patch, Mock

from kfetch import exc
from kfetch.protocol import fetch
from kfetch.connection import Connection


def fetch_request(topic="orders"):
    request = fetch.FetchRequest(max_wait_time=100, min_bytes=1)
    request.add(topic, 0, 0)
    return request


def fetch_response(*topics):
    return fetch.FetchResponse(responses=[
        fetch.TopicResponse(name=topic, partitions=[partition(0)])
        for topic in topics
    ])


class ConnectionTests(cases.AsyncTestCase):

    @patch("tornado.iostream.IOStream")
    @testing.gen_test
    def test_connect_sets_stream(self, IOStream):
        IOStream.return_value.connect.return_value = self.future_value(None)

        conn = Connection("localhost", 1234)

        self.assertEqual(conn.stream, None)

        yield conn.connect()

        self.assertEqual(conn.stream, IOStream.return_value)
        IOStream.return_value.connect.assert_called_once_with(
            ("localhost", 1234)
        )

    def test_close(self):
        conn = Connection("localhost", 1234)
        conn.stream = Mock()

        self.assertEqual(conn.closing, False)

        conn.close()

        self.assertEqual(conn.closing, True)
        conn.stream.close.assert_called_once_with()

    def test_close_before_connect(self):
        conn = Connection("localhost", 1234)

        conn.close()

        self.assertEqual(conn.closing, True)

    @testing.gen_test
    def test_send_when_closing_causes_error(self):
        error = None

        conn = Connection("localhost", 1234)
        conn.closing = True

        try:
            yield conn.send(Mock())
        except exc.BrokerConnectionError as e:
            error = e

        self.assertEqual(error.host, "localhost")
        self.assertEqual(error.port, 1234)

    @testing.gen_test
    def test_send_unknown_api_causes_error(self):
        conn = Connection("localhost", 1234)
        conn.stream = Mock()

        with self.assertRaises(exc.UnhandledResponseError):
            yield conn.send(Mock(api="produce"))

        self.assertEqual(conn.stream.write.called, False)

    @testing.gen_test
    def test_send_writes_framed_request(self):
        request = fetch_request()

        conn = Connection("localhost", 1234)
        conn.stream = Mock()
        conn.stream.write.return_value = self.future_value(None)

        conn.send(request)

        conn.stream.write.assert_called_once_with(request.serialize())
        self.assertIn(request.correlation_id, conn.pending)

    @testing.gen_test
    def test_future_error_writing_to_stream_aborts(self):

        class FakeException(Exception):
            pass

        conn = Connection("localhost", 1234)
        conn.stream = Mock()
        conn.stream.write.return_value = self.future_error(
            FakeException("oh no!")
        )

        error = None

        try:
            yield conn.send(fetch_request())
        except FakeException as e:
            error = e

        self.assertEqual(str(error), "oh no!")
        self.assertEqual(conn.closing, True)
        conn.stream.close.assert_called_once_with()

    @testing.gen_test
    def test_immediate_error_writing_to_stream_aborts(self):

        class FakeException(Exception):
            pass

        conn = Connection("localhost", 1234)
        conn.stream = Mock()
        conn.stream.write.side_effect = FakeException("oh no!")

        error = None

        try:
            yield conn.send(fetch_request())
        except FakeException as e:
            error = e

        self.assertEqual(str(error), "oh no!")
        self.assertEqual(conn.closing, True)
        conn.stream.close.assert_called_once_with()

    @patch.object(Connection, "read_frame")
    @testing.gen_test
    def test_correlates_responses(self, read_frame):
        request1 = fetch_request("orders")
        request2 = fetch_request("payments")

        # response2 comes over the wire before response1
        frames = [
            frame_response(request2.correlation_id, fetch_response("a")),
            frame_response(
                request1.correlation_id, fetch_response("b", "c")
            ),
        ]

        def get_next_frame(*args):
            return self.future_value(frames.pop(0))

        read_frame.side_effect = get_next_frame

        conn = Connection("localhost", 1234)
        conn.stream = Mock()
        conn.stream.write.return_value = self.future_value(None)

        actual_responses = [conn.send(request1), conn.send(request2)]

        yield conn.read_loop()

        # first response is the one with two topics
        self.assertEqual(len(actual_responses[0].result().topics), 2)
        self.assertEqual(len(actual_responses[1].result().topics), 1)
        self.assertEqual(
            actual_responses[0].result().correlation_id,
            request1.correlation_id
        )

    @testing.gen_test
    def test_abort_fails_all_pending_requests(self):
        conn = Connection("localhost", 1234)
        conn.stream = Mock()
        conn.stream.write.return_value = self.future_value(None)

        responses = [
            conn.send(fetch_request()), conn.send(fetch_request())
        ]

        conn.abort()
        conn.abort()  # second abort is a no-op

        for response in responses:
            error = response.exception()
            self.assertEqual(error.host, "localhost")
            self.assertEqual(error.port, 1234)

        self.assertEqual(conn.pending, {})

    def test_dispatch_drops_unknown_correlation_ids(self):
        conn = Connection("localhost", 1234)
        pending = Mock()
        conn.pending = {3: (fetch_request(), pending)}

        conn.dispatch(frame_response(4, fetch_response("orders")))

        self.assertIn(3, conn.pending)
        self.assertEqual(pending.set_result.called, False)
        self.assertEqual(pending.set_exception.called, False)

    def test_dispatch_sets_parse_errors_on_future(self):
        request = fetch_request()
        pending = Mock()

        conn = Connection("localhost", 1234)
        conn.pending = {request.correlation_id: (request, pending)}

        raw = frame_response(request.correlation_id, fetch_response("x"))
        raw = struct.pack("!i", len(raw) - 2) + raw[4:] + b"\x00\x00"

        conn.dispatch(raw)

        error = pending.set_exception.call_args[0][0]
        self.assertIsInstance(error, exc.TrailingBytesError)
        self.assertEqual(conn.pending, {})

    @testing.gen_test
    def test_read_frame(self):
        response = fetch.FetchResponse(responses=[
            fetch.TopicResponse(name="orders", partitions=[
                partition(1, highwater=4),
                partition(2, error_code=6),
            ]),
        ])
        raw = frame_response(555, response)

        raw_data = [raw[:4], raw[4:]]

        def get_raw_data(*args):
            return self.future_value(raw_data.pop(0))

        conn = Connection("localhost", 1234)

        conn.stream = Mock()
        conn.stream.read_bytes.side_effect = get_raw_data

        frame = yield conn.read_frame()

        self.assertEqual(frame, raw)
        conn.stream.read_bytes.assert_called_with(len(raw) - 4)

        message = fetch.FetchResponse.deserialize(frame, 555)

        self.assertEqual(message, response)
        self.assertEqual(message.has_errors, True)

    @testing.gen_test
    def test_read_loop_stops_when_stream_closes(self):
        conn = Connection("localhost", 1234)
        conn.stream = Mock()
        conn.stream.read_bytes.return_value = self.future_error(
            iostream.StreamClosedError()
        )

        yield conn.read_loop()

        self.assertEqual(conn.closing, True)

    @testing.gen_test
    def test_stream_closing_fails_pending_requests(self):
        conn = Connection("localhost", 1234)
        conn.stream = Mock()
        conn.stream.write.return_value = self.future_value(None)
        conn.stream.read_bytes.return_value = self.future_error(
            iostream.StreamClosedError()
        )

        response = conn.send(fetch_request())

        yield conn.read_loop()

        with self.assertRaises(exc.BrokerConnectionError):
            yield response

        self.assertEqual(conn.closing, True)
        self.assertEqual(conn.pending, {})

    @testing.gen_test
    def test_stream_closed_while_writing_fails_request(self):
        conn = Connection("localhost", 1234)
        conn.stream = Mock()
        conn.stream.write.side_effect = iostream.StreamClosedError()

        with self.assertRaises(exc.BrokerConnectionError):
            yield conn.send(fetch_request())

        self.assertEqual(conn.pending, {})

    def test_dispatch_drops_short_frames(self):
        conn = Connection("localhost", 1234)
        conn.stream = Mock()
        pending = Mock()
        conn.pending = {3: (fetch_request(), pending)}

        conn.dispatch(struct.pack("!ih", 2, 3))

        self.assertEqual(conn.closing, False)
        self.assertIn(3, conn.pending)
        self.assertEqual(pending.set_result.called, False)
        self.assertEqual(pending.set_exception.called, False)
        self.assertEqual(conn.stream.close.called, False)
