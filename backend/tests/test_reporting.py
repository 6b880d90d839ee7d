"""HTML and PDF rendering."""
import pytest
from fpdf import FPDF

from melodie.reporting import (
    build_full_report_html,
    build_report_document,
    build_summary_html,
    document_html,
    gauge_svg,
    humanize_key,
    render_pdf,
)
from melodie.schemas import Person, SynthesisResult

JANE = Person(full_name="Jane <Doe>", date_of_birth="1990-05-14", birth_place="Oslo")
JOHN = Person(full_name="John Roe", date_of_birth="1988-11-30")


def _personal():
    return SynthesisResult(
        mode="personal",
        summary="Move forward with patience.",
        direct_answer="Yes, in time.",
        astrology={"summary": "Sun in Taurus.", "career": "Steady growth."},
        numerology={"summary": "Life Path 11.", "lifePath": "Illumination."},
        palmistry={"summary": "No palm image provided", "lifeLine": "No palm image provided"},
        triad={"summary": "All three agree.", "shadow": "Comfort vs expansion."},
    )


def _compat(score=74):
    return SynthesisResult(
        mode="compat",
        summary="A warm match.",
        compat={"summary": "A warm match.", "num_lifePath1": "11", "num_lifePath2": "4", "strengths": "Trust"},
        compat_score=score,
    )


def test_humanize_key():
    assert humanize_key("lifeLine") == "Life Line"
    assert humanize_key("summary") == "Summary"


class TestSummaryHtml:
    def test_personal_embeds_question_and_summary(self):
        html = build_summary_html("Should I <move>?", _personal())
        assert "Should I &lt;move&gt;?" in html
        assert "Move forward with patience." in html

    def test_compat_embeds_score(self):
        html = build_summary_html("Are we a match?", _compat())
        assert "74%" in html
        assert "A warm match." in html

    def test_compat_without_score_does_not_fail(self):
        html = build_summary_html("q", SynthesisResult(mode="compat", summary=""))
        assert "—%" in html


class TestFullReportHtml:
    def test_personal_sections_skip_duplicate_summary(self):
        html = build_full_report_html(title="Report", question="q", result=_personal(), person=JANE)
        assert "Jane &lt;Doe&gt;" in html
        assert "<h3 style=\"margin-top:25px;\">Astrology</h3>" in html
        assert "Career:</strong> Steady growth." in html
        assert "Summary:</strong>" not in html
        assert html.count("Sun in Taurus.") == 1

    def test_missing_details_render_placeholder(self):
        html = build_full_report_html(title="Report", question="q", result=_personal(), person=JANE)
        assert "<strong>Time:</strong> —" in html

    def test_compat_has_gauge_and_table(self):
        html = build_full_report_html(
            title="Compatibility Report", question="q", result=_compat(), person=JANE, partner=JOHN
        )
        assert "<svg" in html
        assert "Compatibility Score: 74%" in html
        assert "John Roe" in html
        assert "Life Path" in html

    def test_lead_html_is_inserted_after_title(self):
        html = build_full_report_html(
            title="Report", question="q", result=_personal(), person=JANE, lead_html="<p>LEAD</p>"
        )
        assert html.index("Report</h2>") < html.index("<p>LEAD</p>") < html.index("Your Question")


class TestGauge:
    def test_zero_score_arc_ends_at_start(self):
        svg = gauge_svg(0)
        assert "A 80 80 0 0 1 20.00 100.00" in svg

    def test_full_score_sweeps_half_circle(self):
        svg = gauge_svg(100)
        assert "A 80 80 0 0 1 180.00 100.00" in svg

    def test_half_score_points_straight_up(self):
        svg = gauge_svg(50)
        assert "A 80 80 0 0 1 100.00 20.00" in svg


class TestPdf:
    def test_document_sections_for_personal(self):
        doc = build_report_document(title="Report", question="q", result=_personal(), person=JANE)
        titles = [section.title for section in doc.sections]
        assert titles == ["Summary", "Your Details", "Astrology", "Numerology", "Palmistry", "Combined Insight"]
        assert doc.answer == "Yes, in time."
        assert doc.compat_score is None

    def test_document_for_compat_carries_score(self):
        doc = build_report_document(title="C", question="q", result=_compat(), person=JANE, partner=JOHN)
        assert doc.compat_score == 74
        assert any("Life Path: 11 | 4" in line for s in doc.sections for line in s.lines)

    @pytest.mark.parametrize("backend", ["reportlab", "fpdf"])
    def test_backends_produce_pdf_bytes(self, backend):
        doc = build_report_document(title="Report — “quotes”", question="q", result=_personal(), person=JANE)
        pdf = render_pdf(doc, backend)
        assert pdf.startswith(b"%PDF")

    @pytest.mark.parametrize("backend", ["reportlab", "fpdf"])
    def test_backends_handle_compat_and_long_text(self, backend):
        result = _compat(score=0)
        result.compat["overall"] = "word " * 2000
        doc = build_report_document(title="C", question="q", result=result, person=JANE, partner=JOHN)
        assert render_pdf(doc, backend).startswith(b"%PDF")

    def test_fpdf_html_is_latin1_safe(self):
        doc = build_report_document(title="Report — ok", question="Ça va…", result=_personal(), person=JANE)
        html = document_html(doc)
        html.encode("latin-1")
        assert "Report - ok" in html

    def test_fpdf_draws_compat_gauge(self, monkeypatch):
        arcs = []
        original = FPDF.arc

        def recording_arc(pdf, x, y, a, start_angle, end_angle, *args, **kwargs):
            arcs.append((start_angle, end_angle))
            return original(pdf, x, y, a, start_angle, end_angle, *args, **kwargs)

        monkeypatch.setattr(FPDF, "arc", recording_arc)
        doc = build_report_document(title="C", question="q", result=_compat(), person=JANE, partner=JOHN)
        assert render_pdf(doc, "fpdf").startswith(b"%PDF")
        # track, then 74% of the half circle
        assert arcs[0] == (0, 180)
        assert arcs[1][1] == 180 and abs(arcs[1][0] - (180 - 133.2)) < 1e-9

    def test_fpdf_skips_gauge_without_score(self, monkeypatch):
        arcs = []
        monkeypatch.setattr(FPDF, "arc", lambda pdf, *args, **kwargs: arcs.append(args))
        doc = build_report_document(title="R", question="q", result=_personal(), person=JANE)
        render_pdf(doc, "fpdf")
        assert arcs == []

    def test_fpdf_html_carries_generated_timestamp(self):
        doc = build_report_document(title="R", question="q", result=_personal(), person=JANE)
        assert "Generated UTC: " in document_html(doc)

    def test_unknown_backend(self):
        doc = build_report_document(title="R", question="q", result=_personal(), person=JANE)
        with pytest.raises(ValueError):
            render_pdf(doc, "wkhtmltopdf")
