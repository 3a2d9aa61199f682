class UnveilError(Exception):
    pass


class ConfigurationError(UnveilError):
    pass


class RegistryError(ConfigurationError):
    """Raised when a CallableRegistry entry could run arbitrary host code."""
