"""
Document Exporter
=================

Render generated document text to DOCX.
"""

from io import BytesIO
from typing import List, Optional


def build_document_docx(
    title: str,
    paragraphs: List[str],
    subtitle: Optional[str] = None,
    numbered: bool = False,
) -> bytes:
    try:
        from docx import Document
        from docx.shared import Pt
    except ImportError as exc:
        raise RuntimeError("python-docx is required for DOCX export") from exc

    doc = Document()
    doc.add_heading(title, level=0)

    if subtitle:
        meta = doc.add_paragraph(subtitle)
        for run in meta.runs:
            run.font.size = Pt(9)

    style = "List Number" if numbered else None
    for text in paragraphs:
        doc.add_paragraph(text, style=style)

    buf = BytesIO()
    doc.save(buf)
    return buf.getvalue()
