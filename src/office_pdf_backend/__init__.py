"""
Office PDF Backend - REST API converting office documents to PDF

This package provides a FastAPI-based web service that turns office
documents (Word, Writer, Excel, Calc, PowerPoint, Impress, ...) into PDF. It
enables:

- Multipart uploads of one or more documents per request
- Per-document conversion through a headless LibreOffice
- Optional merging of the converted PDFs into a single PDF
- Optional coercion into an archival PDF/A format
- Cancellation of in-flight conversions on client disconnect or timeout

Key Components:
    - main: FastAPI application and HTTP endpoint definitions
    - route: The convert route's stage machine
    - binding: Declarative form field binding
    - libreoffice: Office converter contract and LibreOffice implementation
    - pdf_engine: PDF engine contract, pypdf and Ghostscript engines
    - request_scope: Per-request files, form values, token and outputs
    - errors: Error taxonomy and the user/backend error classifier
    - configuration: Config loading and merging logic
    - utils: Filesystem, subprocess and archive utilities

Usage:
    Run the API server with:
        uvicorn office_pdf_backend.main:app --host 0.0.0.0 --port 3000

    Convert two documents into one PDF/A-2b file:
        curl -F files=@a.docx -F files=@b.odt -F merge=true \
             -F pdfFormat=PDF/A-2b http://localhost:3000/forms/libreoffice/convert -o out.pdf
"""

__version__ = "0.1.0"
