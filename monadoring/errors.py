class MonitorError(Exception):
    """Base class for errors raised by monadoring."""


class ConfigError(MonitorError):
    """Configuration could not be loaded or is inconsistent."""


class InvalidAlertRequest(MonitorError):
    """An alert posted to the ingress endpoint is malformed."""
