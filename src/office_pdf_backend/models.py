from __future__ import annotations

from enum import Enum
from typing import Dict, List

from pydantic import BaseModel


class PdfFormat(str, Enum):
    PDF_A_1A = "PDF/A-1a"
    PDF_A_2B = "PDF/A-2b"
    PDF_A_3B = "PDF/A-3b"

    @property
    def native_field(self) -> str:
        """Name of the boolean shortcut form field, e.g. ``nativePdfA1aFormat``."""
        compact = self.value.split("/", 1)[1].replace("-", "")
        return f"nativePdf{compact}Format"


class ConvertOptions(BaseModel):
    landscape: bool = False
    page_ranges: str = ""
    native_pdf_format: str = ""


class ApiSettings(BaseModel):
    timeout: float
    scratch_root: str
    allowed_origins: List[str]


class LibreOfficeSettings(BaseModel):
    binary: str
    extensions: List[str]


class PdfEngineSettings(BaseModel):
    ghostscript_binary: str
    order: List[str]


class LoggingSettings(BaseModel):
    level: str = "INFO"


class Settings(BaseModel):
    api: ApiSettings
    libreoffice: LibreOfficeSettings
    pdf_engines: PdfEngineSettings
    logging: LoggingSettings


class ConvertMetadata(BaseModel):
    extensions: List[str]
    pdf_formats: List[str]
    native_pdf_formats: List[str]
    form_fields: Dict[str, str]
    notes: Dict[str, str]
