"""
Error taxonomy for the conversion route.

Errors fall in two families:
- user errors, caused by the client's input and reported as HTTP 400
- backend errors, caused by a collaborator, the scratch volume or a
  cancellation, and reported as an opaque HTTP 500

``classify`` is the single funnel every stage error goes through before it
leaves the route.
"""

from __future__ import annotations

from http import HTTPStatus
from typing import Tuple


class OfficePdfError(Exception):
    """Base class for every error raised by this package."""


class HTTPError(OfficePdfError):
    """An error carrying the HTTP status and message to send to the client."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message

    def http_error(self) -> Tuple[int, str]:
        return self.status_code, self.message


class UserError(OfficePdfError):
    """Failure attributable to the client's input."""


class MissingMandatoryFileError(UserError):
    def __init__(self, extensions=()) -> None:
        super().__init__("missing at least one mandatory file")
        self.extensions = list(extensions)


class ConflictingNativeFormatError(UserError):
    def __init__(self, fields) -> None:
        super().__init__(f"conflicting native PDF format form fields: {', '.join(fields)}")
        self.fields = list(fields)


class InvalidFormValueError(UserError):
    def __init__(self, field: str, value: str, expected: str) -> None:
        super().__init__(f"invalid value '{value}' for form field '{field}': expected {expected}")
        self.field = field
        self.value = value


class MalformedPageRangesError(UserError):
    def __init__(self, page_ranges: str) -> None:
        super().__init__(f"malformed page ranges '{page_ranges}'")
        self.page_ranges = page_ranges


class PdfFormatNotAvailableError(UserError):
    def __init__(self, pdf_format: str) -> None:
        super().__init__(f"PDF format '{pdf_format}' is not available")
        self.pdf_format = pdf_format


class ConversionError(OfficePdfError):
    """The office converter failed for a reason unrelated to the input."""


class PdfEngineError(OfficePdfError):
    """A PDF engine failed to merge or convert."""


class RequestCancelledError(OfficePdfError):
    def __init__(self, reason: str = "request cancelled") -> None:
        super().__init__(reason)


class OutputPathError(OfficePdfError):
    """An output path was not produced within the current request scope."""


def _user_message(exc: UserError) -> str:
    if isinstance(exc, MissingMandatoryFileError):
        if exc.extensions:
            return f"Missing at least one mandatory file; accepted extensions: {', '.join(sorted(exc.extensions))}"
        return "Missing at least one mandatory file"
    if isinstance(exc, MalformedPageRangesError):
        return f"Malformed page ranges '{exc.page_ranges}' (pageRanges)"
    if isinstance(exc, PdfFormatNotAvailableError):
        return f"Unsupported PDF format '{exc.pdf_format}' (pdfFormat or nativePdfFormat)"
    if isinstance(exc, ConflictingNativeFormatError):
        return f"Conflicting native PDF format form fields: {', '.join(exc.fields)}"
    return str(exc)


def classify(exc: BaseException) -> BaseException:
    """
    Map an internal error to what leaves the route.

    Returns:
        An ``HTTPError`` with status 400 for user errors, ``exc`` itself when
        it already is an ``HTTPError``, and ``exc`` unchanged otherwise so the
        framework reports it as an internal error.
    """
    if isinstance(exc, HTTPError):
        return exc
    if isinstance(exc, UserError):
        return HTTPError(HTTPStatus.BAD_REQUEST.value, _user_message(exc))
    return exc
