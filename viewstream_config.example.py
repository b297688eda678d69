"""
viewstream configuration

Copy this file to viewstream_config.py in your project root (or any parent
of the directory your application runs from) and adjust the values.
"""

# =============================================================================
# Notifications
# =============================================================================

# What happens when a subscriber callback raises during a notification wave:
#   "isolate"   - log the traceback, keep notifying the remaining subscribers
#   "propagate" - notify everyone, then fail the push with SubscriberError
SUBSCRIBER_ERROR_POLICY = "isolate"

# =============================================================================
# Diagnostics
# =============================================================================

# Log a warning when folding a single push takes longer than this many
# milliseconds (0 disables the warning)
SLOW_REDUCTION_WARNING_MS = 250
