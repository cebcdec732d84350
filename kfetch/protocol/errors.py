#: Broker error codes a fetch can come back with, as
#: (code, name, worth retrying) rows.  Code 13 is unused by Kafka.
ERROR_TABLE = (
    (-1, "unknown", False),
    (0, "no_error", False),
    (1, "offset_out_of_range", False),
    (2, "invalid_message", True),
    (3, "unknown_topic_or_partition", True),
    (4, "invalid_message_size", False),
    (5, "leader_not_available", True),
    (6, "not_partition_leader", True),
    (7, "request_timed_out", True),
    (8, "broker_not_available", False),
    (9, "replica_not_available", False),
    (10, "message_size_too_large", False),
    (11, "stale_controller_epoch", False),
    (12, "offset_metadata_too_large", False),
    (14, "offsets_load_in_progress", True),
    (15, "coordinator_not_available", True),
    (16, "not_coordinator", True),
)


class Errors(object):
    """
    Namespace of broker error codes, each available as an attribute by name.

    Allows for checks like ``code == errors.offset_out_of_range`` rather than
    comparing against bare integers.  The ``retriable`` attribute is the set
    of codes worth retrying.
    """
    def __init__(self, table):
        self.names = {}
        self.retriable = set()

        for code, name, retriable in table:
            self.names[code] = name
            setattr(self, name, code)
            if retriable:
                self.retriable.add(code)

    def name_of(self, code):
        """
        Returns the name of the given error code, "unknown" if not recognized.
        """
        return self.names.get(code, self.names[-1])

    def is_error(self, code):
        """
        Returns ``True`` for any code other than the "no error" sentinel.
        """
        return code != self.no_error


errors = Errors(ERROR_TABLE)
