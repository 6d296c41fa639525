"""
Input validation utilities
"""
import re
from typing import Optional, Tuple


def validate_client_id(client_id: str) -> Tuple[bool, Optional[str]]:
    """
    Validate a Spotify application client id

    Args:
        client_id: Client id as copied from the developer dashboard

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not client_id or not client_id.strip():
        return False, "Client ID cannot be empty"

    if not re.match(r'^[0-9a-fA-F]{32}$', client_id.strip()):
        return False, "Client ID must be 32 hexadecimal characters"

    return True, None


def validate_port(port: int) -> Tuple[bool, Optional[str]]:
    """
    Validate a loopback callback port

    Args:
        port: TCP port number

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not isinstance(port, int) or isinstance(port, bool):
        return False, "Port must be an integer"

    if not 1024 <= port <= 65535:
        return False, f"Port {port} outside the unprivileged range 1024-65535"

    return True, None
