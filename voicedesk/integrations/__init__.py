"""Third-party account integrations."""

from .square import (
    InvalidStateError,
    SquareIntegration,
    SquareNotConnectedError,
    build_state,
    decode_state,
    integration_status,
)

__all__ = [
    "InvalidStateError",
    "SquareIntegration",
    "SquareNotConnectedError",
    "build_state",
    "decode_state",
    "integration_status",
]
