"""Registry base URL normalization."""

from urllib.parse import urlsplit, urlunsplit

from eureka_client.errors import InvalidURL

DEFAULT_BASE_PATH = "/eureka/v2"


def normalize_base_url(base_url: str) -> str:
    """
    Turn a user-supplied registry URL into the API root.

    Examples:
        https://example.com          -> https://example.com/eureka/v2
        http://example.com/eureka/   -> http://example.com/eureka/v2
        http://example.com/registry  -> http://example.com/registry

    Raises:
        InvalidURL: If the URL does not parse or lacks a scheme or host,
            or carries a query string or fragment (request paths are appended
            to the result)
    """
    try:
        parts = urlsplit(base_url)
        # Accessing the port validates it
        parts.port
    except (TypeError, ValueError, AttributeError) as e:
        raise InvalidURL(f"invalid base URL {base_url!r}: {e}") from e

    if not parts.scheme or not parts.netloc:
        raise InvalidURL(f"base URL must include scheme and host: {base_url!r}")
    if parts.query or parts.fragment:
        raise InvalidURL(f"base URL must not include a query or fragment: {base_url!r}")

    path = parts.path.rstrip("/")
    if path.lower() == "/eureka":
        path = path + "/v2"
    elif not path:
        path = DEFAULT_BASE_PATH
    # /eureka/v2 and custom paths are kept as given

    return urlunsplit((parts.scheme, parts.netloc, path, "", ""))
