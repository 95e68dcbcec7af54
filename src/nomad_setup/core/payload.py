"""Connection payload (``nomad://connect?...``) construction and parsing."""

import uuid
from dataclasses import dataclass
from urllib.parse import parse_qs, urlencode, urlsplit

SCHEME = "nomad"
ACTION = "connect"
PAYLOAD_PREFIX = f"{SCHEME}://{ACTION}?"

# Field order is part of the wire format read by the app.
FIELDS = ("host", "port", "user", "mosh", "setup_token")


class InvalidArgumentError(ValueError):
    """Raised when payload inputs would produce a malformed URI."""

    pass


@dataclass
class ConnectionRequest:
    """A pending connection request, as carried by the QR payload."""

    host: str
    user: str
    token: str
    port: int = 22


def new_token() -> str:
    """Generate a fresh single-use setup token (random UUID4)."""
    return str(uuid.uuid4())


def _validate_port(port: int) -> int:
    if isinstance(port, bool) or not isinstance(port, int):
        raise InvalidArgumentError(f"Invalid port {port!r}: must be an integer")
    if not 1 <= port <= 65535:
        raise InvalidArgumentError(f"Invalid port {port}: must be between 1 and 65535")
    return port


def build_payload(host: str, user: str, port: int, token: str) -> str:
    """Build the quick setup URI for the Nomad app.

    Each value is query-encoded on its own (``quote_plus``: space becomes
    ``+``), so no ``&``, ``=`` or space can leak into the query string.

    Args:
        host: Address the app should connect to; trimmed, must be non-empty.
        user: Login account; trimmed, must be non-empty.
        port: SSH port, 1-65535.
        token: Opaque setup token; must be non-empty.

    Returns:
        ``nomad://connect?host=..&port=..&user=..&mosh=true&setup_token=..``

    Raises:
        InvalidArgumentError: If any input is empty or out of range.
    """
    host = (host or "").strip()
    user = (user or "").strip()
    if not host:
        raise InvalidArgumentError("Host must not be empty")
    if not user:
        raise InvalidArgumentError("User must not be empty")
    _validate_port(port)
    if not token:
        raise InvalidArgumentError("Setup token must not be empty")

    query = urlencode(
        {
            "host": host,
            "port": str(port),
            "user": user,
            "mosh": "true",
            "setup_token": token,
        }
    )
    return PAYLOAD_PREFIX + query


def build_request_payload(request: ConnectionRequest) -> str:
    """Build the URI for a ConnectionRequest."""
    return build_payload(request.host, request.user, request.port, request.token)


def parse_payload(uri: str) -> ConnectionRequest:
    """Parse a quick setup URI back into a ConnectionRequest.

    Raises:
        InvalidArgumentError: If the URI is not a nomad connect URI or a
            field is missing or malformed.
    """
    parts = urlsplit(uri.strip())
    if parts.scheme != SCHEME or parts.netloc != ACTION:
        raise InvalidArgumentError(f"Not a {SCHEME}://{ACTION} URI: {uri}")

    query = parse_qs(parts.query, keep_blank_values=True)
    values = {}
    for field in FIELDS:
        found = query.get(field)
        if not found or not found[0]:
            raise InvalidArgumentError(f"Missing field in payload: {field}")
        values[field] = found[0]

    try:
        port = int(values["port"])
    except ValueError:
        raise InvalidArgumentError(f"Invalid port in payload: {values['port']}") from None

    return ConnectionRequest(
        host=values["host"],
        user=values["user"],
        token=values["setup_token"],
        port=_validate_port(port),
    )
