from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from html import escape
from io import BytesIO
from textwrap import wrap
from typing import Any

from fpdf import FPDF
from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

from .schemas import EngineResult, Person, SynthesisResult

PLACEHOLDER = "—"

_TYPOGRAPHY = str.maketrans({
    "\u2014": "-", "\u2013": "-", "\u2018": "'", "\u2019": "'",
    "\u201c": '"', "\u201d": '"', "\u2026": "...", "\u00a0": " ",
})

_COMPAT_ROWS: tuple[tuple[str, str], ...] = (
    ("Life Path", "num_lifePath"),
    ("Expression", "num_expression"),
    ("Soul Urge", "num_soulUrge"),
    ("Personality", "num_personality"),
    ("Sun Sign", "astro_sun"),
    ("Moon Sign", "astro_moon"),
    ("Rising Sign", "astro_rising"),
    ("Life Line", "palm_life"),
    ("Head Line", "palm_head"),
    ("Heart Line", "palm_heart"),
)

_COMPAT_SECTIONS: tuple[tuple[str, str], ...] = (
    ("Summary", "summary"),
    ("Answer to Your Question", "answerToQuestion"),
    ("Reasoning", "reasoning"),
    ("Strengths", "strengths"),
    ("Challenges", "challenges"),
    ("Overall Insight", "overall"),
)


def _safe_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).replace("\n", " ").strip()


def _e(value: Any) -> str:
    text = _safe_text(value)
    return escape(text) if text else PLACEHOLDER


def humanize_key(key: str) -> str:
    """``lifeLine`` -> ``Life Line``."""
    return re.sub(r"(?<!^)(?=[A-Z])", " ", key).title()


def engine_sections(result: SynthesisResult) -> list[tuple[str, EngineResult]]:
    """Populated engine results for ``personal`` and ``technical`` modes, in report order."""
    candidates = [
        ("Astrology", result.astrology),
        ("Numerology", result.numerology),
        ("Palmistry", result.palmistry),
        ("Combined Insight", result.triad),
        ("Technical Analysis", result.technical),
    ]
    return [(title, data) for title, data in candidates if data]


# ── HTML ─────────────────────────────────────────────────────────────

def build_summary_html(question: str, result: SynthesisResult) -> str:
    if result.mode == "compat":
        score = result.compat_score if result.compat_score is not None else PLACEHOLDER
        compat_summary = (result.compat or {}).get("summary")
        return (
            '<div style="font-family:system-ui;">'
            f"<p><strong>Your Question:</strong> {_e(question)}</p>"
            f"<p><strong>Your Compatibility Score:</strong> {score}%</p>"
            f"<p>{_e(compat_summary)}</p>"
            "</div>"
        )
    return (
        '<div style="font-family:system-ui;">'
        f"<p><strong>Your Question:</strong> {_e(question)}</p>"
        f"<p>{_e(result.summary)}</p>"
        "</div>"
    )


def gauge_svg(score: int, radius: int = 80) -> str:
    """Half-circle gauge; the filled arc sweeps ``180 * score / 100`` degrees."""
    score = min(max(int(score), 0), 100)
    cx, cy = radius + 20, radius + 20
    sweep = math.radians(180 * score / 100)
    end_x = cx - radius * math.cos(sweep)
    end_y = cy - radius * math.sin(sweep)
    start_x = cx - radius
    track = f"M {start_x} {cy} A {radius} {radius} 0 0 1 {cx + radius} {cy}"
    arc = f"M {start_x} {cy} A {radius} {radius} 0 0 1 {end_x:.2f} {end_y:.2f}"
    width = 2 * cx
    return (
        f'<svg width="{width}" height="{cy + 10}" viewBox="0 0 {width} {cy + 10}" '
        'xmlns="http://www.w3.org/2000/svg">'
        f'<path d="{track}" fill="none" stroke="#e0e0e0" stroke-width="14"/>'
        f'<path d="{arc}" fill="none" stroke="#7b4fd6" stroke-width="14" stroke-linecap="round"/>'
        f'<text x="{cx}" y="{cy - 10}" text-anchor="middle" font-size="24" font-weight="700">{score}%</text>'
        "</svg>"
    )


def _card(inner: str) -> str:
    return (
        '<div style="border:1px solid #ddd;border-radius:14px;padding:20px;'
        f'margin-top:25px;background:#fafafa;">{inner}</div>'
    )


def _details_list(person: Person) -> str:
    return (
        "<ul>"
        f"<li><strong>Name:</strong> {_e(person.full_name)}</li>"
        f"<li><strong>DOB:</strong> {_e(person.date_of_birth)}</li>"
        f"<li><strong>Time:</strong> {_e(person.time_of_birth)}</li>"
        f"<li><strong>Birth Place:</strong> {_e(person.birth_place)}</li>"
        "</ul>"
    )


def _engine_section_html(title: str, data: EngineResult) -> str:
    lines = "".join(
        f"<li><strong>{escape(humanize_key(key))}:</strong> {_e(value)}</li>"
        for key, value in data.items()
        if key != "summary"
    )
    body = f"<p>{_e(data.get('summary'))}</p>"
    if lines:
        body += f"<ul>{lines}</ul>"
    return f'<h3 style="margin-top:25px;">{escape(title)}</h3>{body}'


def _compat_body(result: SynthesisResult, person: Person, partner: Person | None) -> str:
    comp = result.compat or {}
    partner = partner or Person()
    header_cell = 'style="padding:10px 12px;border-bottom:2px solid #000;text-align:left;"'
    cell = 'style="padding:10px 12px;border-bottom:1px solid #e0e0e0;"'
    rows = [
        f"<tr><th {header_cell}></th>"
        f"<th {header_cell}>{escape(person.full_name or 'Person 1')}</th>"
        f"<th {header_cell}>{escape(partner.full_name or 'Person 2')}</th></tr>"
    ]
    for label, key in _COMPAT_ROWS:
        rows.append(
            f"<tr><td {cell}><strong>{label}</strong></td>"
            f"<td {cell}>{_e(comp.get(f'{key}1'))}</td>"
            f"<td {cell}>{_e(comp.get(f'{key}2'))}</td></tr>"
        )
    rows.append(
        f"<tr><td {cell}><strong>Core Compatibility</strong></td>"
        f"<td {cell}>{_e(comp.get('coreCompatibility'))}</td><td {cell}>{PLACEHOLDER}</td></tr>"
    )
    table = f'<table style="width:100%;border-collapse:collapse;">{"".join(rows)}</table>'

    score = result.compat_score if result.compat_score is not None else 0
    sections = "".join(
        f'<h3 style="margin-top:25px;">{title}</h3><p>{_e(comp.get(key))}</p>'
        for title, key in _COMPAT_SECTIONS
    )
    return (
        f'<div style="text-align:center;margin-top:18px;">{gauge_svg(score)}'
        f'<div style="font-size:26px;font-weight:700;padding:12px 0;">Compatibility Score: {score}%</div></div>'
        f"{_card(table)}"
        f'<h3 style="margin-top:35px;">{escape(person.full_name or "Person 1")}</h3>{_details_list(person)}'
        f"<h3>{escape(partner.full_name or 'Person 2')}</h3>{_details_list(partner)}"
        f"{sections}"
    )


def build_full_report_html(
    *,
    title: str,
    question: str,
    result: SynthesisResult,
    person: Person,
    partner: Person | None = None,
    brand: str = "Melodie Says",
    lead_html: str = "",
) -> str:
    if result.mode == "compat":
        body = _compat_body(result, person, partner)
    else:
        body = (
            f"<h3>Your Question</h3><p>{_e(question)}</p>"
            f"<h3>Answer</h3><p>{_e(result.direct_answer)}</p>"
            f"<h3>Summary</h3><p>{_e(result.summary)}</p>"
        )
        if result.mode != "technical":
            body += f"<h3>Your Details</h3>{_details_list(person)}"
        body += "".join(_engine_section_html(t, data) for t, data in engine_sections(result))

    return (
        "<!DOCTYPE html><html><body "
        'style="font-family:system-ui;padding:26px;color:#222;line-height:1.6;">'
        f'<h1 style="text-align:center;margin:0;">{escape(brand)}</h1>'
        f'<h2 style="text-align:center;margin-top:6px;">{escape(title)}</h2>'
        f"{lead_html}"
        f"{body}</body></html>"
    )


# ── PDF ──────────────────────────────────────────────────────────────

@dataclass
class ReportSection:
    title: str
    lines: list[str] = field(default_factory=list)


@dataclass
class ReportDocument:
    brand: str
    title: str
    question: str
    answer: str
    sections: list[ReportSection] = field(default_factory=list)
    compat_score: int | None = None


def _pdf_text(value: Any) -> str:
    """Core PDF fonts only carry latin-1."""
    text = _safe_text(value).translate(_TYPOGRAPHY)
    return text.encode("latin-1", "replace").decode("latin-1")


def _details_lines(person: Person) -> list[str]:
    return [
        f"Name: {person.full_name or '-'}",
        f"Date of birth: {person.date_of_birth or '-'}",
        f"Time of birth: {person.time_of_birth or '-'}",
        f"Birth place: {person.birth_place or '-'}",
    ]


def _generated_line() -> str:
    return f"Generated UTC: {datetime.now(timezone.utc).isoformat(timespec='seconds')}"


def build_report_document(
    *,
    title: str,
    question: str,
    result: SynthesisResult,
    person: Person,
    partner: Person | None = None,
    brand: str = "Melodie Says",
) -> ReportDocument:
    sections: list[ReportSection] = []
    if result.mode == "compat":
        comp = result.compat or {}
        partner = partner or Person()
        names = (person.full_name or "Person 1", partner.full_name or "Person 2")
        sections.append(ReportSection(names[0], _details_lines(person)))
        sections.append(ReportSection(names[1], _details_lines(partner)))
        sections.append(ReportSection(
            "Comparison",
            [
                f"{label}: {comp.get(key + '1') or '-'} | {comp.get(key + '2') or '-'}"
                for label, key in _COMPAT_ROWS
            ] + [f"Core Compatibility: {comp.get('coreCompatibility') or '-'}"],
        ))
        sections.extend(
            ReportSection(t, [comp.get(key) or "-"]) for t, key in _COMPAT_SECTIONS
        )
    else:
        sections.append(ReportSection("Summary", [result.summary]))
        if result.mode != "technical":
            sections.append(ReportSection("Your Details", _details_lines(person)))
        for section_title, data in engine_sections(result):
            lines = [data.get("summary", "")]
            lines += [f"{humanize_key(k)}: {v}" for k, v in data.items() if k != "summary"]
            sections.append(ReportSection(section_title, lines))

    return ReportDocument(
        brand=brand,
        title=title,
        question=question,
        answer=result.direct_answer or result.summary,
        sections=sections,
        compat_score=result.compat_score if result.mode == "compat" else None,
    )


def _draw_wrapped(c: canvas.Canvas, text: str, x: int, y: float, max_chars: int = 95, line_height: int = 14) -> float:
    lines = wrap(_pdf_text(text), width=max_chars) or [""]
    for line in lines:
        if y < 90:
            c.showPage()
            c.setFont("Helvetica", 10)
            y = A4[1] - 48
        c.drawString(x, y, line)
        y -= line_height
    return y


def _render_reportlab(document: ReportDocument) -> bytes:
    buffer = BytesIO()
    c = canvas.Canvas(buffer, pagesize=A4)
    width, height = A4

    c.setTitle(_pdf_text(f"{document.brand} - {document.title}"))
    c.setAuthor(_pdf_text(document.brand))

    y = height - 48
    c.setFont("Helvetica-Bold", 16)
    c.drawString(40, y, _pdf_text(document.brand))
    y -= 22
    c.setFont("Helvetica-Bold", 13)
    c.drawString(40, y, _pdf_text(document.title))
    y -= 16
    c.setFont("Helvetica", 9)
    c.drawString(40, y, _generated_line())

    if document.compat_score is not None:
        y -= 110
        radius = 80
        cx = width / 2
        c.setLineWidth(10)
        c.setStrokeColorRGB(0.88, 0.88, 0.88)
        c.arc(cx - radius, y - radius, cx + radius, y + radius, startAng=0, extent=180)
        sweep = 180 * document.compat_score / 100
        if sweep > 0:
            c.setStrokeColorRGB(0.48, 0.31, 0.84)
            c.arc(cx - radius, y - radius, cx + radius, y + radius, startAng=180 - sweep, extent=sweep)
        c.setStrokeColorRGB(0, 0, 0)
        c.setLineWidth(1)
        c.setFont("Helvetica-Bold", 18)
        c.drawCentredString(cx, y + 10, f"{document.compat_score}%")
        y -= 24

    blocks = [ReportSection("Question", [document.question]), ReportSection("Answer", [document.answer])]
    for section in blocks + document.sections:
        y -= 22
        if y < 120:
            c.showPage()
            y = height - 48
        c.setFont("Helvetica-Bold", 12)
        c.drawString(40, y, _pdf_text(section.title))
        y -= 18
        c.setFont("Helvetica", 10)
        for line in section.lines:
            y = _draw_wrapped(c, line, 40, y)
            y -= 4

    c.showPage()
    c.save()
    return buffer.getvalue()


def _header_html(document: ReportDocument) -> str:
    return (
        f"<h1>{escape(_pdf_text(document.brand))}</h1>"
        f"<h2>{escape(_pdf_text(document.title))}</h2>"
        f"<p>{_generated_line()}</p>"
    )


def _body_html(document: ReportDocument) -> str:
    parts = []
    blocks = [ReportSection("Question", [document.question]), ReportSection("Answer", [document.answer])]
    for section in blocks + document.sections:
        parts.append(f"<h3>{escape(_pdf_text(section.title))}</h3>")
        parts.extend(f"<p>{escape(_pdf_text(line))}</p>" for line in section.lines)
    return "".join(parts)


def document_html(document: ReportDocument) -> str:
    """Plain HTML subset understood by ``FPDF.write_html``."""
    score = ""
    if document.compat_score is not None:
        score = f"<h2>Compatibility Score: {document.compat_score}%</h2>"
    return _header_html(document) + score + _body_html(document)


def _draw_fpdf_gauge(pdf: FPDF, score: int, radius: int = 80) -> None:
    """Half-circle gauge matching the reportlab one; leaves the cursor below it."""
    cx = pdf.w / 2
    top = pdf.y + 16
    pdf.set_line_width(10)
    pdf.set_draw_color(224, 224, 224)
    pdf.arc(cx - radius, top, 2 * radius, 0, 180)
    sweep = 180 * score / 100
    if sweep > 0:
        pdf.set_draw_color(122, 79, 214)
        pdf.arc(cx - radius, top, 2 * radius, 180 - sweep, 180)
    pdf.set_draw_color(0, 0, 0)
    pdf.set_line_width(1)
    pdf.set_font("Helvetica", "B", 18)
    pdf.set_xy(cx - radius, top + radius - 28)
    pdf.cell(2 * radius, 20, f"{score}%", align="C")
    pdf.set_font("Helvetica", size=11)
    pdf.set_xy(pdf.l_margin, top + radius + 12)


def _render_fpdf(document: ReportDocument) -> bytes:
    pdf = FPDF(unit="pt", format="A4")
    pdf.set_title(_pdf_text(f"{document.brand} - {document.title}"))
    pdf.set_author(_pdf_text(document.brand))
    pdf.set_auto_page_break(auto=True, margin=48)
    pdf.add_page()
    pdf.set_font("Helvetica", size=11)
    pdf.write_html(_header_html(document))
    if document.compat_score is not None:
        _draw_fpdf_gauge(pdf, document.compat_score)
    pdf.write_html(_body_html(document))
    out = pdf.output()
    return out if isinstance(out, bytes) else bytes(out)


_BACKENDS = {
    "reportlab": _render_reportlab,
    "fpdf": _render_fpdf,
}


def render_pdf(document: ReportDocument, backend: str = "reportlab") -> bytes:
    try:
        renderer = _BACKENDS[backend]
    except KeyError:
        raise ValueError(f"Unknown PDF backend: {backend}") from None
    return renderer(document)
