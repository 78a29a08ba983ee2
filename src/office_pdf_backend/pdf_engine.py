"""
PDF engines: merging PDFs and coercing them into PDF/A formats.

``PdfEngine`` is the contract the convert route depends on. Concrete engines
only implement what their backend can do and raise
``PdfFormatNotAvailableError`` / ``PdfEngineError`` for the rest;
``MultiPdfEngine`` chains them in the configured order.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Protocol, Sequence

from pypdf import PdfReader, PdfWriter

from .errors import PdfEngineError, PdfFormatNotAvailableError, RequestCancelledError
from .models import PdfFormat
from .request_scope import CancellationToken, LoggerLike
from .utils import run_command

logger = logging.getLogger(__name__)


class PdfEngine(Protocol):
    """Contract of a PDF engine."""

    def merge(self, token: CancellationToken, logger: LoggerLike, input_paths: Sequence[Path], output_path: Path) -> None:
        """Merge ``input_paths`` in order into ``output_path``."""

    def convert(self, token: CancellationToken, logger: LoggerLike, pdf_format: str, input_path: Path, output_path: Path) -> None:
        """Convert ``input_path`` into ``pdf_format`` at ``output_path``."""


class PypdfEngine:
    """Merge PDFs with pypdf. pypdf cannot produce PDF/A documents."""

    def merge(self, token: CancellationToken, logger: LoggerLike, input_paths: Sequence[Path], output_path: Path) -> None:
        writer = PdfWriter()
        for input_path in input_paths:
            token.raise_if_cancelled()
            logger.debug(f"Adding pages from {input_path}")
            try:
                reader = PdfReader(str(input_path))
                for page in reader.pages:
                    writer.add_page(page)
            except Exception as exc:
                raise PdfEngineError(f"cannot read {input_path.name}: {exc}") from exc

        token.raise_if_cancelled()
        with output_path.open("wb") as buffer:
            writer.write(buffer)

    def convert(self, token: CancellationToken, logger: LoggerLike, pdf_format: str, input_path: Path, output_path: Path) -> None:
        raise PdfFormatNotAvailableError(pdf_format)


class GhostscriptEngine:
    """Convert PDFs into PDF/A-2b or PDF/A-3b with Ghostscript's pdfwrite device."""

    PDFA_LEVELS: Dict[str, int] = {
        PdfFormat.PDF_A_2B.value: 2,
        PdfFormat.PDF_A_3B.value: 3,
    }

    def __init__(self, binary: str = "gs") -> None:
        self.binary = binary

    def build_command(self, level: int, input_path: Path, output_path: Path) -> List[str]:
        return [
            self.binary,
            "-dBATCH",
            "-dNOPAUSE",
            "-dNOOUTERSAVE",
            "-dSAFER",
            "-dQUIET",
            "-sDEVICE=pdfwrite",
            f"-dPDFA={level}",
            "-dPDFACompatibilityPolicy=1",
            "-sColorConversionStrategy=RGB",
            "-sProcessColorModel=DeviceRGB",
            f"-sOutputFile={output_path}",
            str(input_path),
        ]

    def merge(self, token: CancellationToken, logger: LoggerLike, input_paths: Sequence[Path], output_path: Path) -> None:
        raise PdfEngineError("merge is not supported by the Ghostscript engine")

    def convert(self, token: CancellationToken, logger: LoggerLike, pdf_format: str, input_path: Path, output_path: Path) -> None:
        level = self.PDFA_LEVELS.get(pdf_format)
        if level is None:
            raise PdfFormatNotAvailableError(pdf_format)

        logger.info(f"Converting {input_path.name} to {pdf_format} with Ghostscript")
        try:
            result = run_command(self.build_command(level, input_path, output_path), token, logger)
        except OSError as exc:
            raise PdfEngineError(f"cannot start Ghostscript ({self.binary}): {exc}") from exc

        if result.returncode != 0:
            logger.error(f"Ghostscript failed with exit code {result.returncode}: {result.stderr.strip()}")
            raise PdfEngineError(f"Ghostscript exited with code {result.returncode}")
        if not output_path.is_file():
            raise PdfEngineError(f"Ghostscript did not produce {output_path.name}")


class MultiPdfEngine:
    """
    Try several engines in order; the first one that succeeds wins.

    ``convert`` raises ``PdfFormatNotAvailableError`` only when no engine
    handles the format; if at least one engine failed for another reason, that
    failure is raised as a ``PdfEngineError``.
    """

    def __init__(self, engines: Sequence[PdfEngine]) -> None:
        if not engines:
            raise ValueError("at least one PDF engine is required")
        self.engines = list(engines)

    def merge(self, token: CancellationToken, logger: LoggerLike, input_paths: Sequence[Path], output_path: Path) -> None:
        errors: List[Exception] = []
        for engine in self.engines:
            token.raise_if_cancelled()
            try:
                engine.merge(token, logger, input_paths, output_path)
                return
            except RequestCancelledError:
                raise
            except Exception as exc:
                logger.debug(f"{type(engine).__name__} cannot merge: {exc}")
                errors.append(exc)
        raise PdfEngineError(f"merge PDFs: {'; '.join(str(error) for error in errors)}") from errors[-1]

    def convert(self, token: CancellationToken, logger: LoggerLike, pdf_format: str, input_path: Path, output_path: Path) -> None:
        errors: List[Exception] = []
        for engine in self.engines:
            token.raise_if_cancelled()
            try:
                engine.convert(token, logger, pdf_format, input_path, output_path)
                return
            except RequestCancelledError:
                raise
            except PdfFormatNotAvailableError:
                logger.debug(f"{type(engine).__name__} does not handle {pdf_format}")
            except Exception as exc:
                logger.debug(f"{type(engine).__name__} cannot convert to {pdf_format}: {exc}")
                errors.append(exc)

        if not errors:
            raise PdfFormatNotAvailableError(pdf_format)
        raise PdfEngineError(f"convert PDF to {pdf_format}: {'; '.join(str(error) for error in errors)}") from errors[0]


ENGINE_FACTORIES = {
    "pypdf": lambda settings: PypdfEngine(),
    "ghostscript": lambda settings: GhostscriptEngine(settings.pdf_engines.ghostscript_binary),
}


def build_pdf_engine(settings) -> MultiPdfEngine:
    unknown = [name for name in settings.pdf_engines.order if name not in ENGINE_FACTORIES]
    if unknown:
        raise ValueError(f"unknown PDF engines: {', '.join(unknown)}")
    return MultiPdfEngine([ENGINE_FACTORIES[name](settings) for name in settings.pdf_engines.order])
