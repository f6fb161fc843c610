from __future__ import annotations


class DrupotError(Exception):
    """Base class for sensor errors."""


class ConfigError(DrupotError):
    """Raised when the configuration file cannot be used to start the sensor."""


class AddressError(DrupotError, ValueError):
    """Raised when a remote address cannot be split into host and port."""


class PublicIPError(DrupotError):
    """Raised when none of the configured echo services returned an address."""
