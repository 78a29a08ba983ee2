"""
Tests for filesystem, subprocess and archive helpers.
"""

import sys
import threading
import zipfile

import pytest

from office_pdf_backend.errors import RequestCancelledError
from office_pdf_backend.request_scope import CancellationToken
from office_pdf_backend.utils import (
    create_zip_archive,
    ensure_directory,
    run_command,
    sanitize_filename,
    split_extension,
    unique_filename,
)


class TestSanitizeFilename:
    """Tests for sanitize_filename()."""

    @pytest.mark.parametrize(
        "filename, expected",
        [
            ("document.docx", "document.docx"),
            ("../My Report!.DOCX", "My-Report.docx"),
            ("C:\\Users\\me\\notes.odt", "notes.odt"),
            ("@#$.odt", "document.odt"),
            ("", "document"),
        ],
    )
    def test_sanitize(self, filename, expected):
        assert sanitize_filename(filename) == expected


class TestPaths:
    """Tests for path helpers."""

    def test_ensure_directory_is_idempotent(self, tmp_path):
        path = tmp_path / "a" / "b"
        assert ensure_directory(path) == path
        assert ensure_directory(path) == path
        assert path.is_dir()

    def test_split_extension(self):
        assert split_extension("archive.tar.gz") == ("archive.tar", ".gz")

    @pytest.mark.parametrize(
        "filename, taken, expected",
        [
            ("a.docx", set(), "a.docx"),
            ("a.docx", {"a.docx"}, "a-2.docx"),
            ("a.docx", {"a.docx", "a-2.docx"}, "a-3.docx"),
            ("document", {"document"}, "document-2"),
        ],
    )
    def test_unique_filename(self, filename, taken, expected):
        assert unique_filename(filename, taken) == expected


class TestRunCommand:
    """Tests for run_command()."""

    def test_captures_output(self):
        result = run_command([sys.executable, "-c", "print('hello')"], CancellationToken())
        assert result.returncode == 0
        assert result.stdout.strip() == "hello"

    def test_reports_exit_code(self):
        result = run_command([sys.executable, "-c", "import sys; sys.exit(3)"], CancellationToken())
        assert result.returncode == 3

    def test_kills_on_cancellation(self):
        token = CancellationToken()
        timer = threading.Timer(0.2, token.cancel)
        timer.start()
        try:
            with pytest.raises(RequestCancelledError):
                run_command([sys.executable, "-c", "import time; time.sleep(30)"], token)
        finally:
            timer.cancel()

    def test_does_not_start_when_cancelled(self, tmp_path):
        token = CancellationToken()
        token.cancel()
        marker = tmp_path / "ran"
        with pytest.raises(RequestCancelledError):
            run_command([sys.executable, "-c", f"open({str(marker)!r}, 'w')"], token)
        assert not marker.exists()


class TestCreateZipArchive:
    """Tests for create_zip_archive()."""

    def test_archive_holds_every_entry_under_its_name(self, tmp_path):
        entries = []
        for index, name in enumerate(("report.pdf", "report.pdf", "notes.pdf")):
            path = tmp_path / f"{index}.pdf"
            path.write_bytes(b"%PDF")
            entries.append((name, path))

        archive = create_zip_archive(entries, tmp_path / "result.zip")

        assert archive == tmp_path / "result.zip"
        with zipfile.ZipFile(archive) as bundle:
            assert sorted(bundle.namelist()) == ["notes.pdf", "report-2.pdf", "report.pdf"]
        assert not (tmp_path / "result").exists()
