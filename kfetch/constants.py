#: Port assumed for brokers given without one
DEFAULT_KAFKA_PORT = 9092

#: Sent as the client id in every request header
CLIENT_ID = "kfetch"

#: Header values for the one api spoken here: fetch, version 0
API_KEYS = {"fetch": 1}
API_VERSION = 0

#: Fetching as a consumer rather than as a follower replica
CONSUMER_REPLICA_ID = -1

#: Per-partition byte limit used when `FetchRequest.add()` isn't given one
DEFAULT_MAX_BYTES = 64 * 1024
