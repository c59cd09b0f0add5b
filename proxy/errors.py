"""Upstream failure types.

These never leave the proxy core: ``UpstreamClient.fetch`` converts them
into ``{"error", "node"}`` result payloads.
"""


class UpstreamError(Exception):
    """Base class for a failed upstream daemon request."""
    pass


class TransportError(UpstreamError):
    """The daemon was unreachable, timed out or answered with a non-2xx status."""
    pass


class PayloadError(UpstreamError):
    """The daemon answered with non-JSON or schema-incompatible data."""
    pass
