"""HTML rendering of transcripts and summaries."""

import html
import re
from datetime import datetime

from medscribe.config import SpeakerConfig
from medscribe.logging import setup_logging

from .models import SessionInfo, utc_now

logger = setup_logging()

_HEADING = re.compile(r"^(#{1,6})\s+(.*)$")
_BULLET = re.compile(r"^\s*[-*•]\s+(.*)$")
_ORDERED = re.compile(r"^\s*\d+[.)]\s+(.*)$")
_BOLD = re.compile(r"\*\*(.+?)\*\*")

_BASE_STYLE = """
    body { font-family: Arial, sans-serif; line-height: 1.6; margin: 40px; color: #333; }
    h1 { color: #2c3e50; border-bottom: 2px solid #3498db; padding-bottom: 10px; }
    h2 { color: #2980b9; margin-top: 20px; }
    h3 { color: #3498db; }
    .patient-info { background-color: #f8f9fa; padding: 15px; border-radius: 5px; margin-bottom: 20px; }
    .patient-info table { width: 100%; border-collapse: collapse; }
    .patient-info td { padding: 8px; border-bottom: 1px solid #ddd; }
    .content { background-color: #fff; padding: 20px; border-radius: 5px; border: 1px solid #e9ecef; }
    .doctor-speech { color: #2980b9; background-color: #e3f2fd; padding: 10px; border-radius: 5px; margin: 5px 0; }
    .patient-speech { color: #16a085; background-color: #e8f5e9; padding: 10px; border-radius: 5px; margin: 5px 0; }
    ul, ol { margin-left: 20px; }
    li { margin-bottom: 5px; }
    pre { white-space: pre-wrap; }
    .timestamp { color: #7f8c8d; font-size: 0.8em; text-align: right; margin-top: 30px; }
    footer { margin-top: 30px; font-size: 0.8em; color: #7f8c8d; text-align: center; }
"""

FOOTER_TEXT = "Generated by Medical Consultation Recording System"


class ResultFormatter:
    """Renders pipeline results as standalone HTML documents."""

    def __init__(self, speakers: SpeakerConfig | None = None):
        self._speakers = speakers or SpeakerConfig()

    def transcript_html(
        self,
        transcript: str,
        session_info: SessionInfo | None = None,
        generated_at: datetime | None = None,
    ) -> str:
        """
        Renders a speaker-labelled transcript with one paragraph per line.

        Lines spoken by the primary speaker get the ``doctor-speech`` class,
        lines of the secondary speaker ``patient-speech``.
        """
        generated_at = generated_at or utc_now()
        primary = f"{self._speakers.primary_label}:"
        secondary = f"{self._speakers.secondary_label}:"

        paragraphs = []
        for line in transcript.splitlines():
            if not line.strip():
                continue
            escaped = html.escape(line.strip())
            if line.startswith(primary):
                paragraphs.append(f'<p class="doctor-speech">{escaped}</p>')
            elif line.startswith(secondary):
                paragraphs.append(f'<p class="patient-speech">{escaped}</p>')
            else:
                paragraphs.append(f"<p>{escaped}</p>")

        return _document(
            "Medical Consultation Transcript",
            session_info,
            "\n".join(paragraphs),
            generated_at,
        )

    def summary_html(
        self,
        summary: str,
        session_info: SessionInfo | None = None,
        generated_at: datetime | None = None,
    ) -> str:
        """
        Renders a summary written in lightweight markup.

        Input the converter cannot handle is shown as escaped preformatted
        text instead of raising.
        """
        generated_at = generated_at or utc_now()
        try:
            body = markup_to_html(summary)
        except Exception:
            logger.warning("Summary markup conversion failed, rendering as plain text")
            body = f"<pre>{html.escape(summary or '')}</pre>"

        return _document("Medical Consultation Summary", session_info, body, generated_at)


def markup_to_html(text: str) -> str:
    """
    Converts line-oriented markup into HTML.

    Grammar, one construct per line:
        ``#`` to ``######`` followed by text is a heading of that level.
        ``-``, ``*`` or ``•`` followed by text is an unordered list item.
        A number followed by ``.`` or ``)`` is an ordered list item.
        Blank lines end paragraphs and lists; other lines join the paragraph.
    ``**text**`` inside any line becomes bold.
    """
    blocks: list[str] = []
    paragraph: list[str] = []
    list_tag: str | None = None
    list_items: list[str] = []

    def flush_paragraph():
        if paragraph:
            blocks.append(f"<p>{' '.join(paragraph)}</p>")
            paragraph.clear()

    def flush_list():
        nonlocal list_tag
        if list_tag:
            items = "".join(f"<li>{item}</li>" for item in list_items)
            blocks.append(f"<{list_tag}>{items}</{list_tag}>")
            list_items.clear()
            list_tag = None

    for raw_line in text.splitlines():
        line = raw_line.rstrip()
        if not line.strip():
            flush_paragraph()
            flush_list()
            continue

        heading = _HEADING.match(line.strip())
        if heading:
            flush_paragraph()
            flush_list()
            level = len(heading.group(1))
            blocks.append(f"<h{level}>{_inline(heading.group(2))}</h{level}>")
            continue

        bullet = _BULLET.match(line)
        ordered = None if bullet else _ORDERED.match(line)
        if bullet or ordered:
            flush_paragraph()
            tag = "ul" if bullet else "ol"
            if list_tag != tag:
                flush_list()
                list_tag = tag
            list_items.append(_inline((bullet or ordered).group(1)))
            continue

        flush_list()
        paragraph.append(_inline(line.strip()))

    flush_paragraph()
    flush_list()
    return "\n".join(blocks)


def _inline(text: str) -> str:
    return _BOLD.sub(r"<strong>\1</strong>", html.escape(text))


def _patient_table(session_info: SessionInfo | None, generated_at: datetime) -> str:
    patient = session_info.patient_info if session_info else None
    rows = [("Name", patient.name if patient else "Not specified")]
    if patient and patient.id:
        rows.append(("ID", patient.id))
    rows.append(("Visit Type", (patient.type if patient else None) or "Not specified"))
    rows.append(("Date", generated_at.strftime("%Y-%m-%d")))
    if session_info and session_info.duration:
        rows.append(("Duration", session_info.duration))

    table_rows = "\n".join(
        f"<tr><td><strong>{label}:</strong></td><td>{html.escape(value)}</td></tr>"
        for label, value in rows
    )
    return (
        '<div class="patient-info">\n<h2>Patient Information</h2>\n'
        f"<table>\n{table_rows}\n</table>\n</div>"
    )


def _document(
    title: str, session_info: SessionInfo | None, body: str, generated_at: datetime
) -> str:
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<meta name="viewport" content="width=device-width, initial-scale=1.0">
<title>{title}</title>
<style>{_BASE_STYLE}</style>
</head>
<body>
<h1>{title}</h1>
{_patient_table(session_info, generated_at)}
<div class="content">
{body}
</div>
<div class="timestamp">Generated on: {generated_at.strftime("%Y-%m-%d %H:%M:%S %Z").strip()}</div>
<footer>{FOOTER_TEXT}</footer>
</body>
</html>
"""
