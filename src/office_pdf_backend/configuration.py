from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict

from dotenv import load_dotenv
from omegaconf import DictConfig, OmegaConf

from .binding import FORM_FIELDS
from .libreoffice import NATIVE_PDF_VERSIONS
from .models import ConvertMetadata, PdfFormat, Settings

# Load environment variables from .env file
load_dotenv()

_HERE = Path(__file__).resolve()
_CANDIDATE_CONFIG_PATHS = [parent / "config/config.yaml" for parent in _HERE.parents[:3]]

if os.environ.get("OFFICE_PDF_CONFIG"):
    _CANDIDATE_CONFIG_PATHS.insert(0, Path(os.environ["OFFICE_PDF_CONFIG"]))

CONFIG_PATH = next((path for path in _CANDIDATE_CONFIG_PATHS if path.exists()), None)
if CONFIG_PATH is None:  # pragma: no cover - fail fast in misconfigured environments
    raise FileNotFoundError("Default config.yaml could not be located; set OFFICE_PDF_CONFIG or reinstall the package.")

NOTES = {
    "files": "Every file part is an input; files whose extension is not accepted are ignored.",
    "merge": "Inputs are merged in filename order; a single input is returned as is.",
    "pdfFormat": "Skipped when nativePdfFormat already asks the office converter for the same format.",
    "response": "One PDF is returned as application/pdf, several as a zip archive.",
}


@lru_cache(maxsize=1)
def _default_config() -> DictConfig:
    return OmegaConf.load(CONFIG_PATH)


def make_runtime_config(overrides: Dict[str, Any]) -> DictConfig:
    """
    Merge ``overrides`` onto the shipped defaults, interpolations unresolved.

    Raises:
        ConfigKeyError: If ``overrides`` names a key the defaults do not have.
    """
    base = OmegaConf.create(OmegaConf.to_container(_default_config(), resolve=False))
    OmegaConf.set_struct(base, True)
    return OmegaConf.merge(base, overrides)  # type: ignore[return-value]


def build_settings(overrides: Dict[str, Any] | None = None) -> Settings:
    config = make_runtime_config(overrides or {})
    return Settings.model_validate(OmegaConf.to_container(config, resolve=True))


@lru_cache(maxsize=1)
def load_settings() -> Settings:
    return build_settings()


def build_convert_metadata(settings: Settings) -> ConvertMetadata:
    return ConvertMetadata(
        extensions=sorted(extension.lower() for extension in settings.libreoffice.extensions),
        pdf_formats=[pdf_format.value for pdf_format in PdfFormat],
        native_pdf_formats=list(NATIVE_PDF_VERSIONS),
        form_fields={name: field.description for name, field in FORM_FIELDS.items()},
        notes=NOTES,
    )
