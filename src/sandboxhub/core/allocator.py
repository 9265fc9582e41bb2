"""Prefix and port allocation.

Prefixes are random lowercase alphanumeric labels used both as the subdomain
and as the container identity suffix. Ports are handed out from the registry's
next_port hint, falling back to max(used) + 1, then probed upward until a port
is found that is neither registered nor bound by a live OS listener.
"""

import errno
import logging
import re
import secrets
import socket
import string
from collections.abc import Callable, Iterable

from sandboxhub.core.errors import AllocationExhaustedError, PortExhaustedError
from sandboxhub.core.models import Instance

logger = logging.getLogger(__name__)

PREFIX_ALPHABET = string.ascii_lowercase + string.digits

DEFAULT_PREFIX_LENGTH = 16
DEFAULT_MIN_PREFIX_LENGTH = 8
DEFAULT_MAX_ATTEMPTS = 100
MAX_PORT = 60000


def generate_prefix(length: int = DEFAULT_PREFIX_LENGTH) -> str:
    """Generate a cryptographically random lowercase alphanumeric prefix."""
    if length < 1:
        raise ValueError("Prefix length must be positive")
    return "".join(secrets.choice(PREFIX_ALPHABET) for _ in range(length))


def validate_prefix(prefix: str, min_length: int = DEFAULT_MIN_PREFIX_LENGTH) -> bool:
    """Return True iff prefix matches ^[a-z0-9]{min_length,}$."""
    return re.fullmatch(rf"[a-z0-9]{{{min_length},}}", prefix) is not None


def generate_unique_prefix(
    length: int = DEFAULT_PREFIX_LENGTH,
    existing: Iterable[str] = (),
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> str:
    """Rejection-sample generate_prefix() against existing prefixes.

    Raises:
        AllocationExhaustedError: No unique prefix after max_attempts.
    """
    taken = set(existing)
    for _ in range(max_attempts):
        prefix = generate_prefix(length)
        if prefix not in taken:
            return prefix

    raise AllocationExhaustedError(
        f"Unable to generate a unique prefix after {max_attempts} attempts"
    )


def is_port_available(port: int, host: str = "0.0.0.0") -> bool:
    """Check that no OS listener is bound to the port.

    Binding fails with EADDRINUSE when any listener (wildcard or loopback)
    already holds the port.
    """
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        try:
            sock.bind((host, port))
        except OSError as exc:
            if exc.errno not in (errno.EADDRINUSE, errno.EACCES):
                logger.warning("Unexpected error probing port %d: %s", port, exc)
            return False
    return True


def find_available_port(
    start_port: int,
    existing_instances: Iterable[Instance],
    next_port: int | None = None,
    max_port: int = MAX_PORT,
    is_available: Callable[[int], bool] = is_port_available,
) -> int:
    """Find a port not used by any instance and not bound on this host.

    Args:
        start_port: First port to hand out on an empty registry.
        existing_instances: Registered instances whose ports are taken.
        next_port: Registry's stored hint, preferred when unused.
        max_port: Inclusive upper bound for probing.
        is_available: OS-level availability check.

    Raises:
        PortExhaustedError: No port found up to max_port.
    """
    used_ports = {instance.port for instance in existing_instances}

    if next_port and next_port not in used_ports:
        port = next_port
    else:
        port = max(used_ports) + 1 if used_ports else start_port

    while port <= max_port:
        if port not in used_ports and is_available(port):
            return port
        port += 1

    raise PortExhaustedError(f"No available port up to {max_port}")
