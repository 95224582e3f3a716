"""
Error taxonomy for the alerting engine.

ValidationError, NotFoundError and UnsupportedChannelTypeError are raised to
callers. ChannelConfigError and DeliveryError are raised inside notification
channels and always converted to a failed NotificationResult.
"""


class AlertEngineError(Exception):
    """Base class for all alert engine errors"""


class ValidationError(AlertEngineError, ValueError):
    """Rule, condition or configuration failed validation"""


class NotFoundError(AlertEngineError, KeyError):
    """Referenced rule does not exist"""

    def __str__(self):
        # KeyError quotes its argument
        return str(self.args[0]) if self.args else ''


class UnsupportedChannelTypeError(AlertEngineError, ValueError):
    """Channel factory was given an unknown channel type"""


class ChannelConfigError(AlertEngineError):
    """Channel is missing required configuration"""


class DeliveryError(AlertEngineError):
    """Transport failed while delivering a notification"""
