"""Exception types raised across the inlama pipeline."""

from __future__ import annotations


class InlamaError(Exception):
    """Base class for errors reported by the command line front end."""


class TransportError(InlamaError):
    """The generate endpoint could not be reached or the stream broke."""


class InputError(InlamaError):
    """Reading from the line source failed."""


class ConfigError(InlamaError):
    """Configuration file, environment or flags hold an invalid value."""


class RecordDecodeError(ValueError):
    """A response line is not a valid generate record (recovered locally)."""


__all__ = [
    "InlamaError",
    "TransportError",
    "InputError",
    "ConfigError",
    "RecordDecodeError",
]
