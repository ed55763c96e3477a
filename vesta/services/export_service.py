"""
Report download generation.

Formats:
    - txt: the document body as UTF-8 text
    - pdf: title + body on A4 pages with 20 mm margins in the default serif
           face, long lines wrapped, rendered by WeasyPrint from an
           autoescaped Jinja template (templates/report_export.html)

Content is built in memory; nothing is written to disk.
"""

import logging
import os

from flask import render_template

from vesta.models.report import AnalysisReport

logger = logging.getLogger(__name__)

EXPORT_FORMATS = ("txt", "pdf")


def download_name(report: AnalysisReport, extension: str) -> str:
    """Report title without its original file extension."""
    stem = os.path.splitext(report.title)[0].strip()
    return f"{stem or 'document'}.{extension}"


def export_text(report: AnalysisReport) -> bytes:
    return report.document_content.encode("utf-8")


def render_export_html(report: AnalysisReport) -> str:
    return render_template(
        "report_export.html",
        title=os.path.splitext(report.title)[0] or "document",
        paragraphs=report.document_content.split("\n"),
    )


def export_pdf(report: AnalysisReport) -> bytes:
    """
    Render the report as PDF.

    Raises:
        RuntimeError: WeasyPrint (or its Pango/Cairo system libraries) is unavailable.
    """
    try:
        from weasyprint import HTML
    except (ImportError, OSError) as exc:
        raise RuntimeError(f"PDF export is unavailable: {exc}") from exc

    html = render_export_html(report)
    pdf = HTML(string=html).write_pdf()
    logger.info("PDF export rendered: %d bytes", len(pdf),
                extra={"workspace_id": report.workspace_id, "report_id": report.id})
    return pdf
