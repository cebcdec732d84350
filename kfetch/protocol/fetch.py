import collections
import logging

from tornado import gen

from kfetch.constants import CONSUMER_REPLICA_ID, DEFAULT_MAX_BYTES
from kfetch.exc import RequestFinalizedError

from .part import Part
from .request import Request
from .response import Response
from .messages import MessageSet
from .errors import errors
from .primitives import Array, String, Int16, Int32, Int64


log = logging.getLogger(__name__)

api_name = "fetch"


__all__ = [
    "FetchRequest",
    "TopicRequest",
    "PartitionRequest",
    "FetchResponse",
    "TopicResponse",
    "PartitionResponse",
    "MessageSetEntry",
]


#: Flattened view of a single fetched partition's messages.
MessageSetEntry = collections.namedtuple(
    "MessageSetEntry", ["topic", "partition", "messages"]
)


class PartitionRequest(Part):
    """
    ::

      PartitionRequest =>
        partition_id => Int32
        offset => Int64
        max_bytes => Int32
    """
    parts = (
        ("partition_id", Int32),
        ("offset", Int64),
        ("max_bytes", Int32),
    )


class TopicRequest(Part):
    """
    ::

      TopicRequest =>
        name => String
        partitions => [PartitionRequest]
    """
    parts = (
        ("name", String),
        ("partitions", Array.of(PartitionRequest)),
    )


class FetchRequest(Request):
    """
    ::

      FetchRequest =>
        replica_id => Int32
        max_wait_time => Int32
        min_bytes => Int32
        topics => [TopicRequest]

    Built up via `add()` calls, one per topic/partition to fetch.  Topics are
    rendered in the order they were first added, partitions in the order
    they were added to their topic.  Adding the same partition twice sends
    it twice.

    Once serialized the request is finalized and no longer accepts `add()`
    calls, its correlation id having been put on the wire.
    """
    api = "fetch"

    parts = (
        ("replica_id", Int32),
        ("max_wait_time", Int32),
        ("min_bytes", Int32),
        ("topics", Array.of(TopicRequest)),
    )

    def __init__(
            self,
            max_wait_time,  # in milliseconds
            min_bytes,
            topics=None,
            correlation_id=None,
    ):
        super(FetchRequest, self).__init__(
            correlation_id=correlation_id,
            max_wait_time=max_wait_time,
            min_bytes=min_bytes,
            topics=list(topics or []),
        )

    @property
    def replica_id(self):
        """
        Consumers always send -1.
        """
        return CONSUMER_REPLICA_ID

    def add(self, topic, partition_id, offset, max_bytes=DEFAULT_MAX_BYTES):
        """
        Adds a partition of a topic to fetch, starting at the given offset.

        No validation is done here, unknown topics and partitions or bad
        offsets are reported back by the broker as partition error codes.
        """
        if self.finalized:
            raise RequestFinalizedError(
                "Request %s already serialized" % self.correlation_id
            )

        for topic_request in self.topics:
            if topic_request.name == topic:
                break
        else:
            topic_request = TopicRequest(name=topic, partitions=[])
            self.topics.append(topic_request)

        topic_request.partitions.append(
            PartitionRequest(
                partition_id=partition_id,
                offset=offset,
                max_bytes=max_bytes,
            )
        )

    @gen.coroutine
    def send(self, connection):
        """
        Sends this request over a connection and yields the `FetchResponse`.

        Any connection, correlation or framing error is raised to the caller
        as is, no retries are attempted.
        """
        log.debug(
            "Sending fetch %s for topics %s",
            self.correlation_id, [topic.name for topic in self.topics]
        )
        response = yield connection.send(self)

        raise gen.Return(response)


class PartitionResponse(Part):
    """
    ::

      PartitionResponse =>
        partition_id => Int32
        error_code => Int16
        highwater_mark_offset => Int64
        message_set => MessageSet
    """
    parts = (
        ("partition_id", Int32),
        ("error_code", Int16),
        ("highwater_mark_offset", Int64),
        ("message_set", MessageSet),
    )

    @property
    def error_name(self):
        """
        The name of the partition's error code, e.g. "offset_out_of_range".
        """
        return errors.name_of(self.error_code)

    @property
    def retriable(self):
        """
        Whether the partition's error code is one worth retrying.
        """
        return self.error_code in errors.retriable


class TopicResponse(Part):
    """
    ::

      TopicResponse =>
        name => String
        partitions => [PartitionResponse]
    """
    parts = (
        ("name", String),
        ("partitions", Array.of(PartitionResponse)),
    )


class FetchResponse(Response):
    """
    ::

      FetchResponse =>
        responses => [TopicResponse]

    Two views of the parsed ``responses`` are built when an instance is
    created:

    * ``topics``: an ordered dict of topic name to its list of
      ``PartitionResponse`` instances
    * ``message_sets``: a flat list of `MessageSetEntry` tuples, one per
      partition in the order they came over the wire

    The ``has_errors`` flag is set if any partition has an error code other
    than ``no_error``; the codes themselves are left on each partition.
    """
    api = "fetch"

    parts = (
        ("responses", Array.of(TopicResponse)),
    )

    def __init__(self, **kwargs):
        super(FetchResponse, self).__init__(**kwargs)

        if self.responses is None:
            self.responses = []

        self.topics = collections.OrderedDict()
        self.message_sets = []
        self.has_errors = False

        for topic in self.responses:
            partitions = self.topics.setdefault(topic.name, [])
            for partition in topic.partitions or []:
                if errors.is_error(partition.error_code):
                    self.has_errors = True

                partitions.append(partition)
                self.message_sets.append(
                    MessageSetEntry(
                        topic=topic.name,
                        partition=partition.partition_id,
                        messages=partition.message_set,
                    )
                )
