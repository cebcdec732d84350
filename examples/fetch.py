#!/usr/bin/env python

import argparse
import logging

from tornado import gen, ioloop

from kfetch.protocol import fetch
from kfetch.session import Session


log = logging.getLogger()


parser = argparse.ArgumentParser(
    description="Example script that fetches one batch from a partition."
)
parser.add_argument(
    "broker", type=str,
    help="host:port of the broker leading the partition"
)
parser.add_argument(
    "topic", type=str,
    help="Topic to fetch from"
)
parser.add_argument(
    "--partition", type=int, default=0,
    help="Partition to fetch from"
)
parser.add_argument(
    "--offset", type=int, default=0,
    help="Offset to start fetching at"
)
parser.add_argument(
    "--max_wait", type=int, default=1000,
    help="Milliseconds the broker may wait for data to arrive"
)
parser.add_argument(
    "--debug", type=bool, default=False,
    help="Sets the logging level to DEBUG"
)


@gen.coroutine
def run(session, args):
    request = fetch.FetchRequest(max_wait_time=args.max_wait, min_bytes=1)
    request.add(args.topic, args.partition, args.offset)

    response = yield session.send(args.broker, request)

    for partition in response.topics.get(args.topic, []):
        if partition.error_code:
            log.error(
                "Partition %s error: %s",
                partition.partition_id, partition.error_name
            )
            continue

        print(
            "partition %s, high-water mark %s" % (
                partition.partition_id, partition.highwater_mark_offset
            )
        )
        for offset, message in partition.message_set:
            print("\t%s: %r" % (offset, message.value))


def main():
    args = parser.parse_args()
    logging.basicConfig()

    if args.debug:
        log.setLevel(logging.DEBUG)

    session = Session()
    try:
        ioloop.IOLoop.current().run_sync(lambda: run(session, args))
    finally:
        session.stop()


if __name__ == "__main__":
    main()
