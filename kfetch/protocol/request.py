import binascii
import hashlib
import os
import socket
import struct

from kfetch.constants import CLIENT_ID, API_VERSION, API_KEYS

from .part import Part
from .primitives import Int16, Int32, String


machine_hash = hashlib.md5()
machine_hash.update(socket.gethostname().encode("UTF-8"))
machine_bytes = machine_hash.digest()[0:4]

#: Seed value for correlation IDs, based on the machine name and PID
last_id = (int(binascii.hexlify(machine_bytes), 16) + os.getpid() & 0xffffff)

# all requests start with a 4-byte signed integer representing payload size
size_struct = struct.Struct("!i")


def generate_correlation_id():
    """
    Creates a new ``correlation_id`` for requests.

    Increments the ``last_id`` value so each generated ID is unique for
    this machine and process, wrapping to stay a positive 32-bit integer.
    """
    global last_id

    last_id = (last_id + 1) & 0x7fffffff

    return last_id


class Request(Part):
    """
    Base class for all requests sent to brokers.

    A specialized subclass of ``Part`` with attributes for correlating
    responses and prefacing payloads with client/api metadata.  The api key
    and version are fixed per request type and cannot be set on instances.
    """
    api = None

    def __init__(self, correlation_id=None, **kwargs):
        super(Request, self).__init__(**kwargs)

        self.client_id = CLIENT_ID
        if correlation_id is None:
            correlation_id = generate_correlation_id()
        self.correlation_id = correlation_id

        self.finalized = False

    @property
    def api_key(self):
        """
        The int16 api key for this request's ``api``.
        """
        return API_KEYS[self.api]

    @property
    def api_version(self):
        """
        Always 0, the only version spoken here.
        """
        return API_VERSION

    def serialize(self):
        """
        Returns a bytestring of the full request frame.

        The frame is prefixed with a 32-bit size of everything after it,
        followed by a preamble::

          api_key => Int16
          api_version => Int16
          correlation_id => Int32
          client_id => String

        Since this is a ``Part`` subclass the rest is a matter of
        appending the result of a ``render()`` call.

        Serializing marks the request as ``finalized`` but changes nothing
        rendered, so repeated calls give identical bytes.
        """
        preamble_parts = (
            ("api_key", Int16),
            ("api_version", Int16),
            ("correlation_id", Int32),
            ("client_id", String),
        )

        preamble_format, data = self.render(preamble_parts)

        payload_format, payload_data = self.render()

        fmt = "".join(["!", preamble_format, payload_format])
        data.extend(payload_data)

        payload = struct.pack(fmt, *data)

        self.finalized = True

        return size_struct.pack(len(payload)) + payload

    to_bytes = serialize
