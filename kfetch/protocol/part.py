from .primitives import Primitive


class Part(object):
    """
    Composite structure made up of named primitives or other parts.

    Subclasses define a ``parts`` tuple of ``(name, class)`` pairs in wire
    order.  Each name becomes an attribute on instances, so a part such as::

      PartitionRequest =>
        partition_id => Int32
        offset => Int64

    is created via ``PartitionRequest(partition_id=0, offset=10)``.
    """
    parts = ()

    def __init__(self, **kwargs):
        for name, _ in self.parts:
            if name in kwargs:
                setattr(self, name, kwargs.pop(name))
            elif not hasattr(self, name):
                setattr(self, name, None)

        if kwargs:
            raise TypeError(
                "Unknown parts for %s: %s" % (
                    self.__class__.__name__, ", ".join(sorted(kwargs))
                )
            )

    def render(self, parts=None):
        """
        Returns a ``struct`` format and list of values for the given parts.

        Defaults to the class's ``parts`` when none are given.  Primitive
        values are wrapped in their primitive class before rendering, any
        other part class is expected to already be an instance able to
        ``render()`` itself.
        """
        if parts is None:
            parts = self.parts

        fmt = []
        data = []

        for name, part_class in parts:
            value = getattr(self, name)
            if issubclass(part_class, Primitive):
                value = part_class(value)

            part_format, part_data = value.render()

            fmt.append(part_format)
            data.extend(part_data)

        return "".join(fmt), data

    @classmethod
    def parse(cls, buff, offset):
        """
        Given a buffer and offset, returns the parsed instance and new offset.

        Each entry in ``parts`` is parsed in order, the offset being handed
        along from one to the next.
        """
        values = {}
        for name, part_class in cls.parts:
            values[name], offset = part_class.parse(buff, offset)

        return cls(**values), offset

    def __eq__(self, other):
        """
        Parts are equal when they're the same type and every part matches.
        """
        if type(self) is not type(other):
            return False

        return all(
            getattr(self, name) == getattr(other, name)
            for name, _ in self.parts
        )

    def __ne__(self, other):
        """
        Inverse of `__eq__`.
        """
        return not self == other

    def __repr__(self):
        return "%s(%s)" % (
            self.__class__.__name__,
            ", ".join(
                "%s=%r" % (name, getattr(self, name))
                for name, _ in self.parts
            )
        )
