class ProxyError(Exception):
    """Base class for failures converted into a 502 proxy response."""


class MalformedTargetError(ProxyError):
    """The constructed upstream URL is not an absolute URL."""


class UpstreamTransportError(ProxyError):
    """Network, TLS or stream failure while talking to the upstream."""
