"""
ChatRelay - Normalization errors.
Raised by the normalizer and timestamp resolver; everything downstream logs instead.
"""


class NormalizationError(ValueError):
    """Base class for payloads that cannot become a ChatEvent."""


class MissingFieldError(NormalizationError):
    def __init__(self, name: str, platform: str = ""):
        self.name = name
        self.platform = platform
        where = f" ({platform})" if platform else ""
        super().__init__(f"Missing required field: {name}{where}")


class InvalidTypeError(NormalizationError):
    def __init__(self, name: str, expected: str = ""):
        self.name = name
        self.expected = expected
        suffix = f", expected {expected}" if expected else ""
        super().__init__(f"Invalid type for field: {name}{suffix}")


class InvalidPlatformError(NormalizationError):
    def __init__(self, name):
        self.name = name
        super().__init__(f"Unsupported platform: {name}")


class MissingTimestampError(NormalizationError):
    def __init__(self, platform: str):
        self.platform = platform
        super().__init__(f"Missing {platform} timestamp")


class InvalidTimestampError(NormalizationError):
    def __init__(self, platform: str, value=None):
        self.platform = platform
        self.value = value
        super().__init__(f"Invalid {platform} timestamp: {value!r}")
