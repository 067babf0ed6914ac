"""
Error types raised while resolving templates.

None of these abort a resolution: every one of them is caught at the point
where it happens and rendered inline with `error_marker`.
"""


class TemplateError(Exception):
    """Base class for all template resolution errors."""


class ExpressionError(TemplateError):
    """Raised when a placeholder expression cannot be parsed or evaluated."""


class FilterResolutionError(TemplateError):
    """Raised for unregistered, malformed or non-callable filters."""


class CyclicDependencyError(TemplateError):
    """Raised when a path is re-entered through an include or a layout."""

    def __init__(self, message='cyclic dependency detected.'):
        super().__init__(message)


class MissingResourceError(TemplateError):
    """Raised when the resolve callback has nothing for a requested path."""

    def __init__(self, path):
        self.path = path
        super().__init__(f"could not resolve {path}")


def error_marker(error) -> str:
    """Render an error as an inline <template-error> element."""
    return f"<template-error>Error: {error}</template-error>"
