"""
Declarative binding of the convert route's multipart form.

Every recognized form field is listed once in ``FORM_FIELDS``; ``bind`` reads
them from a ``RequestScope``, selects the files the office converter accepts,
and returns a ``BoundInput`` for the rest of the route.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List

from .errors import ConflictingNativeFormatError, InvalidFormValueError, MissingMandatoryFileError
from .models import ConvertOptions, PdfFormat
from .request_scope import RequestScope

_TRUE_VALUES = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE_VALUES = {"0", "f", "F", "FALSE", "false", "False"}


def parse_bool(field: str, value: str) -> bool:
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise InvalidFormValueError(field, value, "a boolean")


def parse_str(field: str, value: str) -> str:
    return value.strip()


@dataclass(frozen=True)
class FormField:
    name: str
    parse: Callable[[str, str], Any]
    default: Any
    description: str


_BASE_FIELDS = [
    FormField("landscape", parse_bool, False, "Set the paper orientation to landscape."),
    FormField("pageRanges", parse_str, "", "Page ranges to export, e.g. '1-4,7'. Empty exports every page."),
    FormField("nativePdfFormat", parse_str, "", "PDF/A format the office converter should produce directly."),
    FormField("pdfFormat", parse_str, "", "PDF/A format to coerce the final PDF(s) into."),
    FormField("merge", parse_bool, False, "Merge every converted PDF into a single PDF."),
]

_NATIVE_SHORTCUTS = {pdf_format.native_field: pdf_format for pdf_format in PdfFormat}

FORM_FIELDS: Dict[str, FormField] = {field.name: field for field in _BASE_FIELDS}
FORM_FIELDS.update(
    {
        name: FormField(name, parse_bool, False, f"Deprecated shortcut for nativePdfFormat={pdf_format.value}.")
        for name, pdf_format in _NATIVE_SHORTCUTS.items()
    }
)


@dataclass(frozen=True)
class InputFile:
    filename: str
    path: Path


@dataclass
class BoundInput:
    files: List[InputFile]
    options: ConvertOptions
    merge: bool
    pdf_format: str


def read_form(scope: RequestScope) -> Dict[str, Any]:
    """Parse every recognized field, falling back to its default when absent or empty."""
    values = scope.form_values
    parsed: Dict[str, Any] = {}
    for name, field in FORM_FIELDS.items():
        raw = values.get(name) or [""]
        parsed[name] = field.parse(name, raw[0]) if raw[0] != "" else field.default
    return parsed


def _resolve_native_format(scope: RequestScope, parsed: Dict[str, Any]) -> str:
    native_pdf_format = parsed["nativePdfFormat"]
    enabled = [name for name in _NATIVE_SHORTCUTS if parsed[name]]
    if not enabled:
        return native_pdf_format

    if len(enabled) > 1:
        raise ConflictingNativeFormatError(enabled)

    shortcut = enabled[0]
    shortcut_format = _NATIVE_SHORTCUTS[shortcut].value
    scope.logger.warning(f"'{shortcut}' is deprecated; prefer the 'nativePdfFormat' or 'pdfFormat' form fields")
    if native_pdf_format and native_pdf_format != shortcut_format:
        raise ConflictingNativeFormatError([shortcut, "nativePdfFormat"])
    return shortcut_format


def select_files(files: Dict[str, Path], extensions: Iterable[str], merge: bool) -> List[InputFile]:
    accepted = {extension.lower() for extension in extensions}
    selected = [InputFile(filename, path) for filename, path in files.items() if Path(filename).suffix.lower() in accepted]
    if not selected:
        raise MissingMandatoryFileError(accepted)
    if merge:
        selected.sort(key=lambda input_file: input_file.filename)
    return selected


def bind(scope: RequestScope, extensions: Iterable[str]) -> BoundInput:
    """
    Extract form fields and input files from ``scope``.

    Raises:
        InvalidFormValueError: If a boolean field holds something else.
        ConflictingNativeFormatError: If native format fields disagree.
        MissingMandatoryFileError: If no uploaded file has an accepted extension.
    """
    parsed = read_form(scope)
    native_pdf_format = _resolve_native_format(scope, parsed)
    files = select_files(scope.files, extensions, parsed["merge"])

    options = ConvertOptions(
        landscape=parsed["landscape"],
        page_ranges=parsed["pageRanges"],
        native_pdf_format=native_pdf_format,
    )
    return BoundInput(files=files, options=options, merge=parsed["merge"], pdf_format=parsed["pdfFormat"])
