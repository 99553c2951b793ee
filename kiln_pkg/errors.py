"""
Exception types raised by Kiln components.
"""


class KilnError(Exception):
    """Base class for Kiln errors."""


class ContentProcessingError(KilnError):
    """A single content file could not be processed."""

    def __init__(self, path, stage=None, cause=None):
        self.path = path
        self.stage = stage
        self.cause = cause
        message = f"Error processing {path}"
        if stage:
            message += f" in stage '{stage}'"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)


class PluginConfigError(KilnError):
    """A configured plugin has an unusable 'use' or 'priority' value."""


class BundleError(KilnError):
    """The bundler could not produce any entries."""
