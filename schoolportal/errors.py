"""Failures an assembly can run into.

None of these are fatal to the process; each one is scoped to a single view.
"""
import logging

logger = logging.getLogger(__name__)


class PortalError(Exception):
    """Base class for assembly failures."""

    reason = "error"


class UnresolvedIdentity(PortalError):
    """A class/section label could not be turned into a canonical key."""

    reason = "unresolved_identity"

    def __init__(self, class_label, section=None, detail=None):
        self.class_label = class_label
        self.section = section
        msg = f"Cannot resolve class {class_label!r}"
        if section is not None:
            msg += f" section {section!r}"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class NoScope(PortalError):
    """The session's student or teacher record does not exist."""

    reason = "no_scope"


class FetchFailed(PortalError):
    """The data store returned an error for a select, insert or update."""

    reason = "fetch_failed"

    def __init__(self, operation, table, cause=None):
        self.operation = operation
        self.table = table
        self.cause = cause
        super().__init__(f"{operation} on {table} failed")


class UnmatchedForeignKey(PortalError):
    """A joined reference (subject, exam, teacher) is missing.

    Assemblies never raise this; :func:`placeholder` logs it and substitutes a label.
    """

    reason = "unmatched_foreign_key"


class InvalidEntry(PortalError):
    """Submitted marks or attendance failed validation."""

    reason = "invalid_entry"


def placeholder(related, attribute, fallback, reference=None):
    """Return ``related.attribute``, or ``fallback`` when the reference dangles."""
    if related is None:
        if reference is not None:
            logger.warning(str(UnmatchedForeignKey(f"{reference} not found; showing {fallback!r}")))
        return fallback
    value = getattr(related, attribute, None)
    return value if value else fallback
