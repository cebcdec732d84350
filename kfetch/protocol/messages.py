import logging
import struct
import zlib

from kfetch.exc import FramingError

from .part import Part
from .primitives import Int8, Int32, Int64, Bytes


log = logging.getLogger(__name__)

# every message is prefixed with its Int64 offset and Int32 size
message_header_size = 8 + 4


class MessageSet(object):
    """
    Class representing an ordered set of `Message` instances.

    The ``messages`` attribute is a list of (<offset>, <message>) tuples.

    Compressed message sets are not unpacked: a compressed wrapper message
    is kept as a single entry with its raw value, see `Message.compression`.
    """
    def __init__(self, messages=None):
        self.messages = messages or []

    def render(self):
        """
        Returns a tuple of format and data suitable for ``struct.pack``.

        Each (<offset>, <message>) tuple in ``self.messages`` is `render()`-ed
        and the output collected int a single format and data list, prefaced
        with a single integer denoting the size of the message set.
        """
        format = ["i"]
        data = []
        total_size = 0

        for offset, message in self.messages:
            offset_format, offset_data = Int64(offset).render()
            message_format, message_data = message.render()

            message_size = struct.calcsize("!" + message_format)
            size_format, size_data = Int32(message_size).render()

            message_format = "".join([
                offset_format, size_format, message_format
            ])
            total_size += struct.calcsize("!" + message_format)

            format.append(message_format)
            data.extend(offset_data)
            data.extend(size_data)
            data.extend(message_data)

        data.insert(0, total_size)

        return "".join(format), data

    def __eq__(self, other):
        """
        Tests equivalence of message sets via their ``messages`` attributes.
        """
        return self.messages == other.messages

    def __ne__(self, other):
        """
        Inverse of `__eq__`.
        """
        return not self == other

    def __len__(self):
        """
        The number of messages in the set.
        """
        return len(self.messages)

    def __iter__(self):
        """
        Iterates over the (<offset>, <message>) tuples in order.
        """
        return iter(self.messages)

    def __repr__(self):
        return "[%s]" % ", ".join([str(m) for _, m in self.messages])

    @classmethod
    def parse(cls, buff, offset, size=None):
        """
        Given a buffer and offset, returns the parsed `MessageSet` and offset.

        Unless given a ``size``, the ``Int32`` size of the set is parsed
        first.  Exactly that many bytes are consumed from the buffer no matter
        how many whole messages they contain: brokers cut the last message
        off at the requested max bytes, so a partial trailing message is
        dropped rather than treated as an error.

        A size running past the end of the buffer or a negative message size
        raises a ``FramingError``.  Each message is parsed from its own bytes
        only, so a message can't read into its neighbor.
        """
        if size is None:
            size, offset = Int32.parse(buff, offset)

        end = offset + size
        if size < 0 or end > len(buff):
            raise FramingError(
                "Message set of %d bytes overruns buffer at offset %d" % (
                    size, offset
                )
            )

        raw = buff[offset:end]

        messages = []
        position = 0
        while position < size:
            if size - position < message_header_size:
                log.debug("Dropping partial message header at end of set.")
                break

            message_offset, position = Int64.parse(raw, position)
            message_size, position = Int32.parse(raw, position)

            if message_size < 0:
                raise FramingError(
                    "Negative size %d for message at offset %d" % (
                        message_size, message_offset
                    )
                )

            if position + message_size > size:
                log.debug(
                    "Dropping partial message at offset %d", message_offset
                )
                break

            message_end = position + message_size
            message, _ = Message.parse(raw[position:message_end], 0)
            position = message_end

            messages.append((message_offset, message))

        return cls(messages), end


class Message(Part):
    """
    Basic ``Part`` subclass representing a single Kafka message.
    ::

      Message =>
        crc => Int32
        magic => Int8
        attributes => Int8
        key => Bytes
        value => Bytes
    """
    parts = (
        ("crc", Int32),
        ("magic", Int8),
        ("attributes", Int8),
        ("key", Bytes),
        ("value", Bytes),
    )

    @property
    def compression(self):
        """
        The compression codec flag, stored in the lowest 2 bits of attributes.
        """
        return (self.attributes or 0) & 0b00000011

    def render(self):
        """
        Renders just like the base ``Part`` class, but with a computed CRC32.
        """
        format, data = super(Message, self).render(self.parts[1:])

        payload = struct.pack("!" + format, *data)

        crc = zlib.crc32(payload)
        if crc >= (2**31):
            crc -= 2**32

        format = "i%ds" % len(payload)

        return format, [crc, payload]

    def __eq__(self, other):
        """
        Tests equivalency of two messages by comparing the ``key`` and
        ``value``.
        """
        return self.key == other.key and self.value == other.value

    def __repr__(self):
        return "%s => %s" % (self.key, self.value)
