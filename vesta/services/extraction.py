"""
Text Extraction Adapter

Turns an uploaded plan document into plain text for analysis:

    .pdf        pypdf, one block per page joined with a blank line; rejected
                as ScannedOrGarbledPdf when the text layer is mostly
                unprintable (scanned images, broken font encodings)
    .docx       python-docx paragraphs, cleaned of control and zero-width
                characters, runs of blank lines collapsed
    .txt / .md  decoded as UTF-8 and returned as-is; invalid UTF-8 is
                CorruptDocument

Anything else, including legacy .doc, is UnsupportedFormat. One shot, no
retries and no fallback between parsers.
"""

import io
import logging
import os
import re

from vesta.core.exceptions import (
    CorruptDocument,
    EmptyDocument,
    ScannedOrGarbledPdf,
    UnsupportedFormat,
)

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = frozenset({".pdf", ".docx", ".txt", ".md"})
DEFAULT_PRINTABLE_RATIO = 0.25

_ZERO_WIDTH_RE = re.compile("[\u200b\u200c\u200d\u2060\ufeff]")
# C0/C1 controls except tab and newline
_CONTROL_RE = re.compile("[\x00-\x08\x0b-\x1f\x7f-\x9f]")
_BLANK_RUN_RE = re.compile(r"\n{3,}")


def extension_of(filename: str) -> str:
    return os.path.splitext(filename or "")[1].lower()


def printable_ratio(text: str) -> float:
    """Share of characters that are printable or ordinary whitespace."""
    if not text:
        return 0.0
    printable = sum(1 for ch in text if ch.isprintable() or ch in "\n\t\r")
    return printable / len(text)


def clean_text(text: str) -> str:
    """Strip control / zero-width characters and collapse 3+ newlines to 2."""
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = _ZERO_WIDTH_RE.sub("", text)
    text = _CONTROL_RE.sub("", text)
    return _BLANK_RUN_RE.sub("\n\n", text)


def _extract_pdf(data: bytes, min_ratio: float) -> str:
    from pypdf import PdfReader
    from pypdf.errors import PdfReadError

    try:
        reader = PdfReader(io.BytesIO(data))
        pages = [page.extract_text() or "" for page in reader.pages]
    except (PdfReadError, ValueError, KeyError, TypeError) as exc:
        raise CorruptDocument(f"Could not read PDF: {exc}") from exc

    text = "\n\n".join(p.strip() for p in pages if p.strip())
    ratio = printable_ratio(text)
    if not text.strip() or ratio < min_ratio:
        logger.info("PDF rejected as scanned/garbled: %d pages, printable ratio %.2f",
                    len(pages), ratio)
        raise ScannedOrGarbledPdf(ratio)
    return text


def _extract_docx(data: bytes) -> str:
    import docx

    try:
        document = docx.Document(io.BytesIO(data))
    except Exception as exc:  # PackageNotFoundError, BadZipFile, lxml errors
        raise CorruptDocument(f"Could not read DOCX: {exc}") from exc

    raw = "\n\n".join(p.text for p in document.paragraphs)
    return clean_text(raw).strip()


def _extract_plain(data: bytes) -> str:
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise CorruptDocument(f"Text file is not valid UTF-8 (byte {exc.start})") from exc


def extract_text(filename: str, data: bytes, *, min_printable_ratio: float = DEFAULT_PRINTABLE_RATIO) -> str:
    """
    Extract plain text from an uploaded document.

    Args:
        filename: Original file name; only the extension is used.
        data: Raw file bytes.
        min_printable_ratio: PDF text layers below this printable share are rejected.

    Returns:
        Extracted text.

    Raises:
        UnsupportedFormat: Extension is not .pdf/.docx/.txt/.md.
        ScannedOrGarbledPdf: PDF without a usable text layer.
        CorruptDocument: Parser could not open the file, or a text file is
            not valid UTF-8.
        EmptyDocument: Nothing but whitespace was extracted.
    """
    ext = extension_of(filename)
    if ext not in SUPPORTED_EXTENSIONS:
        raise UnsupportedFormat(ext)

    if ext == ".pdf":
        text = _extract_pdf(data, min_printable_ratio)
    elif ext == ".docx":
        text = _extract_docx(data)
    else:
        text = _extract_plain(data)

    if not text.strip():
        raise EmptyDocument(filename)
    logger.debug("Extracted %d chars from %s", len(text), filename)
    return text
