import struct

from kfetch.exc import FramingError


#: Compiled big-endian structs, keyed on their format
structs = {}


def packer(fmt):
    """
    Returns the (cached) big-endian ``struct.Struct`` for the given format.
    """
    if fmt not in structs:
        structs[fmt] = struct.Struct("!" + fmt)

    return structs[fmt]


def check_room(buff, offset, size, what):
    """
    Raises a ``FramingError`` unless ``size`` bytes remain at ``offset``.

    Returns the offset just past those bytes.
    """
    end = offset + size
    if end > len(buff):
        raise FramingError(
            "%s needs %d bytes at offset %d, only %d remain" % (
                what, size, offset, max(len(buff) - offset, 0)
            )
        )

    return end


class Primitive(object):
    """
    A single fixed-width value on the wire, always big-endian.

    Subclasses set ``fmt`` to a ``struct`` format character.  Rendering is
    lazy: `render()` hands back the format and values so that a whole request
    can be packed in one ``struct.pack`` call.  Parsing is eager and works on
    a buffer plus offset, returning the value and the offset after it.

    Reading past the end of the buffer is a framing problem, not a
    ``struct.error``.
    """
    fmt = None

    def __init__(self, value):
        self.value = value

    def render(self):
        """
        Returns the ``struct`` format and a list holding the value.
        """
        return self.fmt, [self.value]

    @classmethod
    def parse(cls, buff, offset):
        """
        Reads the value at ``offset``, returning it and the following offset.
        """
        fixed = packer(cls.fmt)
        end = check_room(buff, offset, fixed.size, cls.__name__)

        return fixed.unpack_from(buff, offset)[0], end

    def __eq__(self, other):
        """
        Primitives compare by value.
        """
        return self.value == other.value

    def __repr__(self):
        return "%s(%s)" % (self.__class__.__name__, self.value)


class Int8(Primitive):
    """
    Represents an 8-bit signed integer.
    """
    fmt = "b"


class Int16(Primitive):
    """
    Represents an 16-bit signed integer.
    """
    fmt = "h"


class Int32(Primitive):
    """
    Represents an 32-bit signed integer.
    """
    fmt = "i"


class Int64(Primitive):
    """
    Represents an 64-bit signed integer.
    """
    fmt = "q"


class VariablePrimitive(Primitive):
    """
    A length-prefixed value.  The prefix type is ``length_class``, and a
    length of -1 stands for ``None``.
    """
    length_class = None

    @classmethod
    def encode(cls, value):
        """
        Turns a value into the bytes sent on the wire.
        """
        if isinstance(value, bytes):
            return value

        return str(value).encode("utf-8")

    @classmethod
    def decode(cls, raw):
        """
        Turns the bytes read off the wire into a value.
        """
        return raw

    def render(self):
        """
        Renders the length prefix followed by the encoded value, e.g. "h6s".
        """
        length_fmt = self.length_class.fmt

        if self.value is None:
            return length_fmt, [-1]

        raw = self.encode(self.value)

        return "%s%ds" % (length_fmt, len(raw)), [len(raw), raw]

    @classmethod
    def parse(cls, buff, offset):
        """
        Reads the length prefix, then exactly that many bytes.

        Lengths below -1 are a ``FramingError``.
        """
        length, offset = cls.length_class.parse(buff, offset)
        if length == -1:
            return None, offset
        if length < -1:
            raise FramingError(
                "Negative %s length %d at offset %d" % (
                    cls.__name__, length, offset
                )
            )

        end = check_room(buff, offset, length, cls.__name__)

        return cls.decode(bytes(buff[offset:end])), end


class String(VariablePrimitive):
    """
    UTF-8 text with a 16-bit length, used for topic names and client ids.
    """
    length_class = Int16

    @classmethod
    def decode(cls, raw):
        """
        Decodes as UTF-8, leaving undecodable values as bytes.
        """
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError:
            return raw

    def __repr__(self):
        return repr(self.value)


class Bytes(VariablePrimitive):
    """
    Raw bytes with a 32-bit length, used for message keys and values.
    """
    length_class = Int32


class Array(Primitive):
    """
    A 32-bit count followed by that many items of ``item_class``.

    Items may be primitives or parts.  Use ``Array.of(<class>)`` to get an
    array type for a given item class.
    """
    item_class = None

    @classmethod
    def of(cls, item_class):
        """
        Returns an ``Array`` subclass holding ``item_class`` items.
        """
        return type(
            "ArrayOf%s" % item_class.__name__, (cls,),
            {"item_class": item_class}
        )

    def render(self):
        """
        Renders the item count, then each item in turn.  ``None`` renders as
        an empty array.
        """
        items = self.value or []

        fmt = [Int32.fmt]
        data = [len(items)]

        for item in items:
            if issubclass(self.item_class, Primitive):
                item = self.item_class(item)

            item_fmt, item_data = item.render()
            fmt.append(item_fmt)
            data.extend(item_data)

        return "".join(fmt), data

    @classmethod
    def parse(cls, buff, offset):
        """
        Reads the item count, then that many items.  A null (-1) array reads
        as an empty list, any other negative count is a ``FramingError``.
        """
        count, offset = Int32.parse(buff, offset)
        if count < -1:
            raise FramingError(
                "Negative array count %d at offset %d" % (count, offset)
            )

        items = []
        for _ in range(max(count, 0)):
            item, offset = cls.item_class.parse(buff, offset)
            items.append(item)

        return items, offset

    def __repr__(self):
        return "[%s]" % ", ".join(map(repr, self.value))
