"""
Shared constants for the orchestration module.
"""


class TimeoutConstants:
    """
    Centralized timeout configuration, in seconds.
    """
    # Coordination loop
    QUEUE_GET_TIMEOUT = 0.5
    LOOP_STOP_TIMEOUT = 5.0
    FLUSH_TIMEOUT = 10.0

    # Timer threads
    TIMER_JOIN_TIMEOUT = 2.0

    # Device status queries
    STATUS_QUERY_TIMEOUT = 10.0

    # Gradle daemon shutdown before a build
    GRADLE_STOP_TIMEOUT = 30.0

    # Process termination; the graceful phase uses the configured grace period
    TERMINATION_FORCE_TIMEOUT = 2.0
    TERMINATION_POLL_INTERVAL = 0.05
