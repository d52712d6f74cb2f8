"""
Error taxonomy for a control audit run.
"""


class AuditError(Exception):
    """Base class for ClientSideEye errors."""


class ArgumentError(AuditError, ValueError):
    """Malformed header, cookie, URL or option value."""


class NavigationError(AuditError):
    """The target page could not be loaded."""


class ElementEvaluationError(AuditError):
    """Evaluating a single element on the rendering surface failed."""


class MutationResolutionError(AuditError):
    """A mutation candidate could not be re-resolved to a live element."""
