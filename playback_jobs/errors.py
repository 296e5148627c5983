class ConfigError(ValueError):
    """Raised when an environment setting is missing or malformed"""


class JobError(RuntimeError):
    """Raised when a batch job cannot complete"""
