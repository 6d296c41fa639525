"""
Utilities package
Logging, time helpers and input validation
"""

from .logger import (
    get_logger,
    configure_from_settings,
    setup_logging,
    get_current_log_file
)
from .helpers import (
    now_ms,
    format_duration,
    format_timestamp_ms,
    parse_iso_timestamp_ms,
    truncate_string
)
from .validation import (
    validate_client_id,
    validate_port
)

__all__ = [
    # Logging
    'get_logger',
    'configure_from_settings',
    'setup_logging',
    'get_current_log_file',

    # Helpers
    'now_ms',
    'format_duration',
    'format_timestamp_ms',
    'parse_iso_timestamp_ms',
    'truncate_string',

    # Validation
    'validate_client_id',
    'validate_port'
]
