"""
Pytest configuration and fixtures for Office PDF Backend tests.
"""

import os
import shutil
import tempfile
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from pypdf import PdfWriter

# Set test environment variables before importing the app
os.environ["OFFICE_PDF_SCRATCH_ROOT"] = tempfile.mkdtemp(prefix="office_pdf_test_scratch_")
os.environ["OFFICE_PDF_LOG_LEVEL"] = "DEBUG"

from office_pdf_backend.main import app, get_converter, get_pdf_engine
from office_pdf_backend.request_scope import CancellationToken, RequestScope

FAKE_PDF = b"%PDF-1.4\n%fake\n%%EOF"


class FakeConverter:
    """Office converter double recording its calls."""

    def __init__(self, error=None, extensions=(".docx",)):
        self.error = error
        self._extensions = list(extensions)
        self.calls = []

    def extensions(self):
        return list(self._extensions)

    def pdf(self, token, logger, input_path, output_path, options):
        self.calls.append({"input_path": input_path, "output_path": output_path, "options": options})
        token.raise_if_cancelled()
        if self.error is not None:
            raise self.error
        output_path.write_bytes(FAKE_PDF)


class FakeEngine:
    """PDF engine double recording its calls."""

    def __init__(self, merge_error=None, convert_error=None):
        self.merge_error = merge_error
        self.convert_error = convert_error
        self.merge_calls = []
        self.convert_calls = []

    def merge(self, token, logger, input_paths, output_path):
        self.merge_calls.append({"input_paths": list(input_paths), "output_path": output_path})
        if self.merge_error is not None:
            raise self.merge_error
        output_path.write_bytes(FAKE_PDF)

    def convert(self, token, logger, pdf_format, input_path, output_path):
        self.convert_calls.append({"pdf_format": pdf_format, "input_path": input_path, "output_path": output_path})
        if self.convert_error is not None:
            raise self.convert_error
        output_path.write_bytes(FAKE_PDF)


@pytest.fixture(scope="session", autouse=True)
def scratch_root():
    """Cleanup the scratch root after all tests."""
    root = os.environ["OFFICE_PDF_SCRATCH_ROOT"]
    yield Path(root)
    shutil.rmtree(root, ignore_errors=True)


@pytest.fixture
def make_scope(tmp_path):
    """Build a RequestScope whose files live under tmp_path."""

    def _make_scope(filenames=(), values=None, cancelled=False):
        uploads = tmp_path / "uploads"
        uploads.mkdir(exist_ok=True)
        files = {}
        for filename in filenames:
            path = uploads / filename
            path.write_bytes(b"office document")
            files[filename] = path

        token = CancellationToken()
        if cancelled:
            token.cancel()
        return RequestScope(tmp_path / "scratch", files=files, form_values=values or {}, token=token)

    return _make_scope


@pytest.fixture
def fake_converter():
    return FakeConverter()


@pytest.fixture
def fake_engine():
    return FakeEngine()


@pytest.fixture
def client(fake_converter, fake_engine):
    """Create a test client whose collaborators are fakes."""
    app.dependency_overrides[get_converter] = lambda: fake_converter
    app.dependency_overrides[get_pdf_engine] = lambda: fake_engine
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def make_pdf(tmp_path):
    """Write a blank PDF with the given page sizes and return its path."""

    def _make_pdf(name, sizes=((612, 792),)):
        writer = PdfWriter()
        for width, height in sizes:
            writer.add_blank_page(width=width, height=height)
        path = tmp_path / name
        with path.open("wb") as buffer:
            writer.write(buffer)
        return path

    return _make_pdf
