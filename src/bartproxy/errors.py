"""Exception types raised by bartproxy."""


class BartProxyError(Exception):
    """Base class for all bartproxy errors."""


class NotFoundError(BartProxyError, LookupError):
    """Requested stop does not exist in the static index."""


class TransportError(BartProxyError):
    """A feed fetch failed (network error, timeout or non-2xx status)."""


class DecodeError(TransportError):
    """A feed payload could not be decoded as GTFS-Realtime."""


class LoadError(BartProxyError):
    """Static GTFS files are missing or malformed."""
