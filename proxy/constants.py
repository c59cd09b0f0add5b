"""Constants for the TurtleCoin API proxy."""

# Protocol constants
TARGET_BLOCK_TIME = 30  # TurtleCoin target block time: 30 seconds

# Default upstream used when a request names no node
DEFAULT_HOST = "public.turtlenode.io"
DEFAULT_PORT = 11898  # TurtleCoin daemon RPC port

# Well-known public daemons queried for the network-wide height
SEED_NODES = [
    ("nyc.turtlenode.io", 11898),
    ("sfo.turtlenode.io", 11898),
    ("ams.turtlenode.io", 11898),
    ("sin.turtlenode.io", 11898),
    ("daemon.turtle.link", 11898),
]

# Cache constants
CACHE_TTL = 30  # Default TTL: 30 seconds
NETWORK_SENTINEL = "network"  # Stands in for host and port on aggregate keys
GLOBAL_HEIGHT_OPERATION = "globalheight"

# Network constants
REQUEST_TIMEOUT = 5.0  # Total timeout for one upstream request, in seconds
BIND_IP = "0.0.0.0"
BIND_PORT = 80
