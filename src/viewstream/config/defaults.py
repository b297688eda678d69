"""Default configuration values for viewstream."""

from typing import Literal

# Subscriber callbacks that raise during a notification wave:
#   "isolate"   - log the traceback and keep notifying the rest of the wave
#   "propagate" - finish the wave, then fail the push with SubscriberError
SUBSCRIBER_ERROR_POLICY: Literal["isolate", "propagate"] = "isolate"

# Log a warning when folding one push takes longer than this (0 disables)
SLOW_REDUCTION_WARNING_MS: int = 250

# All configurable keys (for validation)
CONFIG_KEYS = {
    "SUBSCRIBER_ERROR_POLICY",
    "SLOW_REDUCTION_WARNING_MS",
}

SUBSCRIBER_ERROR_POLICIES = ("isolate", "propagate")
