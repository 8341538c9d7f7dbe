"""
Payment specific codes and gateway result mapping.
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    # Generic success
    SUCCESS = 0

    # Gateway/Network errors (6xxxx)
    PROVIDER_ERROR = 60000        # gateway answered with a non-success status
    PROVIDER_RECOVERABLE = 60001  # gateway unreachable or timed out
    CONFIGURATION_ERROR = 60005
    DOWNSTREAM_ERROR = 60006      # enrollment side effect failed


# Daraja STK callback ResultCode -> internal reason (extend per needs)
MPESA_RESULT_CODES: dict[int, str] = {
    0: "succeeded",
    1: "insufficient_funds",
    1001: "subscriber_busy",
    1019: "transaction_expired",
    1025: "push_failed",
    1032: "canceled_by_user",
    1037: "user_unreachable",
    2001: "invalid_pin",
    9999: "push_failed",
}


def describe_result_code(code: int) -> str:
    return MPESA_RESULT_CODES.get(code, f"result_{code}")
