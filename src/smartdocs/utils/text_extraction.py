"""Plain-text extraction for uploaded documents."""

from pathlib import Path

import docx
import pdfplumber
import structlog

from smartdocs.exceptions import TextExtractionError

logger = structlog.get_logger(__name__)

SUPPORTED_EXTENSIONS = (".docx", ".pdf", ".txt")


def extract_text(file_path: str | Path | None) -> str:
    """Extract plain text from a .docx, .pdf or .txt file.

    Args:
        file_path: Path to the document.

    Returns:
        The document text, stripped of leading and trailing whitespace.

    Raises:
        TextExtractionError: The path is empty, missing, unsupported or the
            file cannot be parsed.
    """
    if file_path is None or not str(file_path).strip():
        raise TextExtractionError("File path is required")

    path = Path(file_path)
    if not path.exists():
        raise TextExtractionError("File does not exist")

    suffix = path.suffix.lower()
    if suffix not in SUPPORTED_EXTENSIONS:
        raise TextExtractionError(
            f"Unsupported file type {suffix or '(none)'}; expected one of "
            f"{', '.join(SUPPORTED_EXTENSIONS)}"
        )

    try:
        if suffix == ".docx":
            text = _docx_text(path)
        elif suffix == ".pdf":
            text = _pdf_text(path)
        else:
            text = path.read_text(encoding="utf-8")
    except Exception as e:
        raise TextExtractionError(
            f"Failed to parse {suffix[1:].upper()} file: {e}", original_error=e
        ) from e

    text = text.strip()
    logger.debug("text_extracted", path=str(path), characters=len(text))
    return text


def _docx_text(path: Path) -> str:
    """Paragraph text followed by tables as pipe-delimited rows."""
    document = docx.Document(str(path))

    parts = [p.text for p in document.paragraphs if p.text.strip()]
    for table in document.tables:
        rows = [" | ".join(cell.text.strip() for cell in row.cells) for row in table.rows]
        table_text = "\n".join(rows)
        if table_text.strip():
            parts.append(table_text)

    return "\n".join(parts)


def _pdf_text(path: Path) -> str:
    text_parts = []
    with pdfplumber.open(path) as pdf:
        for page in pdf.pages:
            page_text = page.extract_text()
            if page_text:
                text_parts.append(page_text)

    return "\n\n".join(text_parts)
