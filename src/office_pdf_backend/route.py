"""
The office documents → PDF convert route.

``ConvertRoute.handle`` walks one request through an explicit state machine::

    START → BIND → PERFILE → (MERGE?) → (FORMAT?) → REGISTER → DONE
      any error → EXIT

Each stage is a method of its own. Errors raised by any stage go through
``errors.classify`` before leaving ``handle``: user errors come out as an
``HTTPError`` with status 400, everything else unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List

from .binding import BoundInput, bind
from .errors import classify
from .libreoffice import OfficeConverter
from .pdf_engine import PdfEngine
from .request_scope import RequestScope
from .utils import split_extension

MERGED_FILENAME = "merged.pdf"


class Stage(str, Enum):
    START = "start"
    BIND = "bind"
    PERFILE = "perfile"
    MERGE = "merge"
    FORMAT = "format"
    REGISTER = "register"
    DONE = "done"
    EXIT = "exit"


@dataclass
class ConvertOutcome:
    output_paths: List[Path]
    # Client-facing filename of each output path, same order
    output_names: List[str] = field(default_factory=list)
    stages: List[Stage] = field(default_factory=list)


class ConvertRoute:
    """Drive the office converter and the PDF engine for one request at a time."""

    def __init__(self, converter: OfficeConverter, engine: PdfEngine) -> None:
        self.converter = converter
        self.engine = engine

    def handle(self, scope: RequestScope) -> ConvertOutcome:
        """
        Convert the scope's office documents and register the resulting PDFs.

        Raises:
            HTTPError: For user errors (status 400).
            Exception: Any other failure, left opaque.
        """
        stages: List[Stage] = [Stage.START]

        def enter(stage: Stage) -> None:
            scope.token.raise_if_cancelled()
            stages.append(stage)

        try:
            enter(Stage.BIND)
            bound = bind(scope, self.converter.extensions())
            scope.logger.debug(
                f"Bound {len(bound.files)} file(s): merge={bound.merge}, pdfFormat='{bound.pdf_format}', "
                f"nativePdfFormat='{bound.options.native_pdf_format}'"
            )

            enter(Stage.PERFILE)
            artifacts = self._convert_each(scope, bound)
            names = [f"{split_extension(input_file.filename)[0]}.pdf" for input_file in bound.files]

            if bound.merge and len(artifacts) > 1:
                enter(Stage.MERGE)
                artifacts = [self._merge(scope, artifacts)]
                names = [MERGED_FILENAME]

            if self._needs_format(bound):
                enter(Stage.FORMAT)
                artifacts = [self._format(scope, bound.pdf_format, artifact) for artifact in artifacts]

            enter(Stage.REGISTER)
            self._register(scope, artifacts)
        except Exception as exc:
            stages.append(Stage.EXIT)
            classified = classify(exc)
            scope.logger.info(f"Conversion aborted during '{stages[-2].value}': {exc}")
            if classified is exc:
                raise
            raise classified from exc

        stages.append(Stage.DONE)
        return ConvertOutcome(output_paths=artifacts, output_names=names, stages=stages)

    @staticmethod
    def _needs_format(bound: BoundInput) -> bool:
        if not bound.pdf_format:
            return False
        return bound.options.native_pdf_format != bound.pdf_format

    def _convert_each(self, scope: RequestScope, bound: BoundInput) -> List[Path]:
        artifacts: List[Path] = []
        for input_file in bound.files:
            output_path = scope.generate_path(".pdf")
            self.converter.pdf(scope.token, scope.logger, input_file.path, output_path, bound.options)
            artifacts.append(output_path)
        return artifacts

    def _merge(self, scope: RequestScope, artifacts: List[Path]) -> Path:
        output_path = scope.generate_path(".pdf")
        self.engine.merge(scope.token, scope.logger, artifacts, output_path)
        return output_path

    def _format(self, scope: RequestScope, pdf_format: str, artifact: Path) -> Path:
        output_path = scope.generate_path(".pdf")
        self.engine.convert(scope.token, scope.logger, pdf_format, artifact, output_path)
        return output_path

    def _register(self, scope: RequestScope, artifacts: List[Path]) -> None:
        scope.add_output_paths(artifacts)
        scope.logger.info(f"Registered {len(artifacts)} output path(s)")
