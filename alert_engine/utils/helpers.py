"""Utility helper functions"""

import time


def now_ms():
    """Current wall-clock time in epoch milliseconds"""
    return int(time.time() * 1000)


def format_timestamp(timestamp_ms):
    """Format epoch milliseconds as an ISO-8601 UTC string"""
    from datetime import datetime, timezone

    return datetime.fromtimestamp(timestamp_ms / 1000.0, tz=timezone.utc).isoformat()
