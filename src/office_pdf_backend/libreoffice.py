"""
Office document → PDF conversion through a headless LibreOffice.

``OfficeConverter`` is the contract the convert route depends on;
``LibreOfficeConverter`` implements it by running ``soffice --convert-to``
once per document.
"""

from __future__ import annotations

import json
import logging
import re
import shutil
from io import BytesIO
from pathlib import Path
from threading import Lock
from typing import Dict, List, Protocol, Sequence
from uuid import uuid4

from pypdf import PdfReader, PdfWriter

from .errors import ConversionError, MalformedPageRangesError, PdfFormatNotAvailableError
from .models import ConvertOptions, PdfFormat
from .request_scope import CancellationToken, LoggerLike
from .utils import ensure_directory, run_command

logger = logging.getLogger(__name__)

PAGE_RANGES_PATTERN = re.compile(r"^\d+(-\d+)?(,\d+(-\d+)?)*$")

# SelectPdfVersion values of LibreOffice's PDF export filters
NATIVE_PDF_VERSIONS: Dict[str, int] = {
    PdfFormat.PDF_A_1A.value: 1,
    PdfFormat.PDF_A_2B.value: 2,
    PdfFormat.PDF_A_3B.value: 3,
}

_CALC_EXTENSIONS = {".csv", ".dbf", ".dif", ".fods", ".ods", ".ots", ".xls", ".xlsb", ".xlsm", ".xlsx", ".xlt", ".xltm", ".xltx"}
_IMPRESS_EXTENSIONS = {".fodp", ".odp", ".otp", ".pot", ".potm", ".potx", ".pps", ".ppsx", ".ppt", ".pptm", ".pptx"}
_DRAW_EXTENSIONS = {".bmp", ".emf", ".eps", ".fodg", ".gif", ".jpeg", ".jpg", ".odg", ".otg", ".png", ".svg", ".tif", ".tiff", ".vsd", ".wmf"}


class OfficeConverter(Protocol):
    """Contract of a single-document → PDF converter."""

    def pdf(
        self,
        token: CancellationToken,
        logger: LoggerLike,
        input_path: Path,
        output_path: Path,
        options: ConvertOptions,
    ) -> None:
        """Convert ``input_path`` to a PDF written at ``output_path``."""

    def extensions(self) -> List[str]:
        """Return the file extensions (with leading dot) the converter accepts."""


def validate_page_ranges(page_ranges: str) -> str:
    """
    Normalize and validate a page ranges expression such as ``1-3,5``.

    Raises:
        MalformedPageRangesError: If the expression cannot be parsed or a
            range is reversed or starts at page zero.
    """
    normalized = page_ranges.replace(" ", "")
    if not normalized:
        return ""
    if not PAGE_RANGES_PATTERN.match(normalized):
        raise MalformedPageRangesError(page_ranges)
    for part in normalized.split(","):
        bounds = [int(bound) for bound in part.split("-")]
        if bounds[0] < 1 or bounds[0] > bounds[-1]:
            raise MalformedPageRangesError(page_ranges)
    return normalized


def export_filter(input_path: Path) -> str:
    extension = input_path.suffix.lower()
    if extension in _CALC_EXTENSIONS:
        return "calc_pdf_Export"
    if extension in _IMPRESS_EXTENSIONS:
        return "impress_pdf_Export"
    if extension in _DRAW_EXTENSIONS:
        return "draw_pdf_Export"
    return "writer_pdf_Export"


def filter_options(options: ConvertOptions) -> Dict[str, Dict[str, object]]:
    """Build the JSON filter options of the PDF export for ``options``."""
    data: Dict[str, Dict[str, object]] = {}
    page_ranges = validate_page_ranges(options.page_ranges)
    if page_ranges:
        data["PageRange"] = {"type": "string", "value": page_ranges}

    if options.native_pdf_format:
        version = NATIVE_PDF_VERSIONS.get(options.native_pdf_format)
        if version is None:
            raise PdfFormatNotAvailableError(options.native_pdf_format)
        data["SelectPdfVersion"] = {"type": "long", "value": version}
        if options.native_pdf_format == PdfFormat.PDF_A_1A.value:
            data["UseTaggedPDF"] = {"type": "boolean", "value": True}
    return data


def rotate_to_landscape(pdf_path: Path) -> None:
    """
    Rotate every portrait page of ``pdf_path`` by 90 degrees, in place.

    The whole document is cloned, so catalog entries such as the XMP
    ``/Metadata`` and the PDF/A ``/OutputIntents`` are kept.
    """
    reader = PdfReader(BytesIO(pdf_path.read_bytes()))
    writer = PdfWriter(clone_from=reader)
    for page in writer.pages:
        if page.mediabox.width < page.mediabox.height:
            page.rotate(90)
    with pdf_path.open("wb") as buffer:
        writer.write(buffer)


class LibreOfficeConverter:
    """
    Convert office documents with ``soffice --headless --convert-to pdf``.

    Thread Safety:
        LibreOffice does not cope with parallel conversions from the same
        installation, so calls are serialized with a lock. Waiting for the
        lock honors the cancellation token.
    """

    def __init__(self, binary: str = "soffice", extensions: Sequence[str] = (".docx",)) -> None:
        self.binary = binary
        self._extensions = sorted({extension.lower() for extension in extensions})
        self._lock = Lock()

    def extensions(self) -> List[str]:
        return list(self._extensions)

    def build_command(self, input_path: Path, outdir: Path, profile_dir: Path, options: ConvertOptions) -> List[str]:
        target = f"pdf:{export_filter(input_path)}"
        export_options = filter_options(options)
        if export_options:
            target = f"{target}:{json.dumps(export_options, separators=(',', ':'))}"
        return [
            self.binary,
            "--headless",
            "--invisible",
            "--nocrashreport",
            "--nodefault",
            "--nologo",
            "--nofirststartwizard",
            "--norestore",
            f"-env:UserInstallation={profile_dir.resolve().as_uri()}",
            "--convert-to",
            target,
            "--outdir",
            str(outdir),
            str(input_path),
        ]

    def _acquire(self, token: CancellationToken) -> None:
        while not self._lock.acquire(timeout=0.1):
            token.raise_if_cancelled()

    def pdf(
        self,
        token: CancellationToken,
        logger: LoggerLike,
        input_path: Path,
        output_path: Path,
        options: ConvertOptions,
    ) -> None:
        work_dir = output_path.parent / f"libreoffice-{uuid4().hex}"
        outdir = work_dir / "out"
        command = self.build_command(input_path, outdir, work_dir / "profile", options)

        try:
            self._acquire(token)
            try:
                ensure_directory(outdir)
                logger.info(f"Converting {input_path.name} to PDF with LibreOffice")
                result = run_command(command, token, logger)
            except OSError as exc:
                raise ConversionError(f"cannot start LibreOffice ({self.binary}): {exc}") from exc
            finally:
                self._lock.release()

            if result.returncode != 0:
                logger.error(f"LibreOffice failed with exit code {result.returncode}: {result.stderr.strip()}")
                raise ConversionError(f"LibreOffice exited with code {result.returncode}")

            produced = outdir / f"{input_path.stem}.pdf"
            if not produced.is_file():
                raise ConversionError(f"LibreOffice did not produce a PDF for {input_path.name}")
            shutil.move(str(produced), str(output_path))
        finally:
            shutil.rmtree(work_dir, ignore_errors=True)

        if options.landscape:
            rotate_to_landscape(output_path)
