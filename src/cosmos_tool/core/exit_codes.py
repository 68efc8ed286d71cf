"""Standard exit codes for Cosmos Tool.

Codes 0-7 follow Unix conventions; 8 and 9 separate remote API failures
from permission problems so scripts can tell them apart.
"""

from enum import IntEnum


class ExitCode(IntEnum):
    """Exit codes for Cosmos Tool commands."""

    SUCCESS = 0
    GENERAL_ERROR = 1
    USAGE_ERROR = 2
    INPUT_ERROR = 3
    OUTPUT_ERROR = 4
    NETWORK_ERROR = 5
    TIMEOUT = 6
    CONFIG_ERROR = 7
    API_ERROR = 8
    PERMISSION_DENIED = 9
