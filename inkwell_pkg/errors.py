"""
Exception types raised while turning post content into pages.
"""


class InkwellError(Exception):
    """Base class for all Inkwell errors."""


class ParseError(InkwellError):
    """Raised when document source cannot be parsed without guessing."""

    def __init__(self, message, line=None):
        self.line = line
        if line is not None:
            message = f"{message} (line {line})"
        super().__init__(message)


class PluginError(InkwellError):
    """Raised when a transformation plugin fails.

    Carries the plugin name and its position in the pipeline so a failed
    build can be traced back to the exact step.
    """

    def __init__(self, plugin_name, step_index, message=''):
        self.plugin_name = plugin_name
        self.step_index = step_index
        self.message = message
        detail = f": {message}" if message else ''
        super().__init__(f"Plugin '{plugin_name}' failed at step {step_index}{detail}")


class MissingRequiredField(InkwellError):
    """Raised by the build layer when a post lacks a field it cannot do without."""

    def __init__(self, field, identifier=None):
        self.field = field
        self.identifier = identifier
        where = f" in '{identifier}'" if identifier else ''
        super().__init__(f"Missing required field '{field}'{where}")
