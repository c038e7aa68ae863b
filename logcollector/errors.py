"""
Collector exceptions

Per-datagram errors (FramingError, ValidationError) drop that datagram
only. SinkError stays inside the sink that raised it. ConfigError is
raised at startup, never while datagrams are being handled.
"""


class FramingError(ValueError):
    """Datagram is not a usable WSJT-X frame (short buffer, bad magic, unsupported schema)"""


class TruncatedFieldError(ValueError):
    """A length-prefixed field claims more bytes than remain; callers degrade instead of failing"""


class ValidationError(ValueError):
    """QSO record has no call sign"""


class SinkError(RuntimeError):
    """Delivery to an output (file, MQTT, Wavelog) failed"""

    def __init__(self, message, status=None):
        super().__init__(message)
        self.status = status


class ConfigError(ValueError):
    """Settings are invalid or incomplete"""
