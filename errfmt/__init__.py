"""User-facing error messages"""

from .formatter import ERROR_RENDERERS, format_error, suggestion_for_resource

__all__ = ["ERROR_RENDERERS", "format_error", "suggestion_for_resource"]
