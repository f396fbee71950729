r"""Route identifying a network destination.

A route is the key used both for connection pooling and for per-
destination circuit breakers.
"""

from __future__ import annotations

__all__ = ["DEFAULT_PORTS", "Route"]

from dataclasses import dataclass

import httpx

# Default ports for the supported URL schemes
DEFAULT_PORTS = {"http": 80, "https": 443}


@dataclass(frozen=True)
class Route:
    """Network destination (scheme, host, port).

    Attributes:
        scheme: The URL scheme, ``"http"`` or ``"https"``.
        host: The lower-cased host name or IP address.
        port: The TCP port.

    Example:
        ```pycon
        >>> from aresclient.route import Route
        >>> route = Route.from_url("https://API.example.com/data?q=1")
        >>> route
        Route(scheme='https', host='api.example.com', port=443)
        >>> str(route)
        'https://api.example.com:443'

        ```
    """

    scheme: str
    host: str
    port: int

    def __post_init__(self) -> None:
        if self.scheme not in DEFAULT_PORTS:
            msg = f"scheme must be one of {sorted(DEFAULT_PORTS)}, got {self.scheme!r}"
            raise ValueError(msg)
        if not self.host:
            msg = "host must be a non-empty string"
            raise ValueError(msg)
        if not 0 < self.port < 65536:
            msg = f"port must be in [1, 65535], got {self.port}"
            raise ValueError(msg)

    def __str__(self) -> str:
        return f"{self.scheme}://{self.host}:{self.port}"

    @classmethod
    def from_url(cls, url: str | httpx.URL) -> Route:
        """Build the route of a URL.

        Args:
            url: The URL, as a string or ``httpx.URL``.

        Returns:
            The route with the default port filled in when the URL has none.

        Raises:
            ValueError: If the scheme is not http/https or the host is missing.
        """
        url = httpx.URL(url)
        scheme = url.scheme.lower()
        if scheme not in DEFAULT_PORTS:
            msg = f"Unsupported URL scheme {url.scheme!r} in {url}"
            raise ValueError(msg)
        port = url.port if url.port is not None else DEFAULT_PORTS[scheme]
        return cls(scheme=scheme, host=url.host.lower(), port=port)

    @classmethod
    def from_request(cls, request: httpx.Request) -> Route:
        """Build the route targeted by a request."""
        return cls.from_url(request.url)
