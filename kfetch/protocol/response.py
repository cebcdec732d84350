from kfetch.exc import (
    FramingError, TrailingBytesError, CorrelationMismatchError
)

from .part import Part
from .primitives import Int32


class Response(Part):
    """
    Base class for all api response classes.

    A simple class, has only an ``api`` attribute expected to be defined by
    subclasses, and a `deserialize()` classmethod.
    """
    api = None

    @classmethod
    def deserialize(cls, raw_bytes, correlation_id):
        """
        Deserializes a full response frame into an instance.

        The frame is checked before any parts are parsed:

        1) the leading 32-bit size must match the rest of the buffer,
           otherwise a ``FramingError`` is raised
        2) the correlation id must be the expected one, otherwise a
           ``CorrelationMismatchError`` is raised

        The parts are then parsed from what follows.  Reads running off the
        end of the buffer raise ``FramingError`` from the primitives, and
        unparsed bytes left over at the end a ``TrailingBytesError``.
        """
        size, offset = Int32.parse(raw_bytes, 0)

        body_size = len(raw_bytes) - offset
        if size != body_size:
            raise FramingError(
                "Declared size %d does not match %d bytes received" % (
                    size, body_size
                )
            )

        received_id, offset = Int32.parse(raw_bytes, offset)
        if received_id != correlation_id:
            raise CorrelationMismatchError(correlation_id, received_id)

        instance, offset = cls.parse(raw_bytes, offset)

        if offset != len(raw_bytes):
            raise TrailingBytesError(len(raw_bytes) - offset)

        instance.correlation_id = received_id

        return instance
