"""Exception hierarchy for endpoint description and data view parsing.

All fatal parse failures derive from :class:`FCSParseError` (itself a
``ValueError`` so callers that already guard parsing with ``except ValueError``
keep working). The subclasses follow the error taxonomy the parsers use:

* :class:`MalformedInputError` - ill-formed XML, unexpected elements or text,
  wrong cardinality.
* :class:`SchemaViolationError` - required element/attribute missing,
  uniqueness violated, version/capability mismatch.
* :class:`UnknownValueError` - an enumerated wire token was not recognized.
* :class:`UnresolvedReferenceError` - an identifier reference does not resolve.
* :class:`LegacyFormatError` - the document uses the deprecated namespace.

:class:`InternalParserError` is deliberately *not* a ``ValueError``: it signals
a defect (for example a registry without any accepting parser), not bad input.

Soft violations (missing ``en`` title, superfluous declarations) are never
raised; they are only logged.
"""

from __future__ import annotations

from typing import Optional


class FCSParseError(ValueError):
    """Base class for fatal parse errors.

    Args:
        message: Human readable description of the violation.
        location: Document location (element path or line/column) if known.
    """

    def __init__(self, message: str, location: Optional[str] = None) -> None:
        self.message = message
        self.location = location
        if location:
            super().__init__(f"{message} (at {location})")
        else:
            super().__init__(message)


class MalformedInputError(FCSParseError):
    """Input is not well-formed or does not have the expected structure."""


class SchemaViolationError(FCSParseError):
    """Input is well-formed but violates a rule of the description schema."""


class UnknownValueError(SchemaViolationError):
    """An enumerated value (policy, encoding, field type, ...) is not known."""

    def __init__(
        self, kind: str, value: Optional[str], location: Optional[str] = None
    ) -> None:
        self.kind = kind
        self.value = value
        super().__init__(f"Unexpected value '{value}' for {kind}", location)


class UnresolvedReferenceError(SchemaViolationError):
    """An identifier reference points to nothing declared."""

    def __init__(
        self, reference: str, message: str, location: Optional[str] = None
    ) -> None:
        self.reference = reference
        super().__init__(message, location)


class LegacyFormatError(SchemaViolationError):
    """Document uses the deprecated resource-info namespace."""


class InternalParserError(RuntimeError):
    """Internal invariant violated; indicates a bug rather than bad input."""
