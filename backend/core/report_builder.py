"""
report_builder.py — Report objects and their PDF / CSV / Excel renderings.

Builds:
- Student report  {student, subjects, term, ...}  for one student and term
- Term report     {students, term, generatedAt, summary, selection}  for many

Renders:
- Student PDF  (identity, term result, subject table, cross-term trend chart)
- Term PDF     (status summary, chart, paginated colour-coded student table)
- CSV          (double-quoted text fields, whole-number percentages)
- Excel        (all students plus one sheet per status)

export_report() falls back from PDF to CSV when PDF rendering fails and only
raises when both fail.
"""

import csv
import io
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple
from xml.sax.saxutils import escape

import matplotlib
matplotlib.use("Agg")  # Non-interactive backend for server use
import matplotlib.pyplot as plt
from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import cm, mm
from reportlab.platypus import (
    Image,
    Paragraph,
    SimpleDocTemplate,
    Spacer,
    Table,
    TableStyle,
)

from core.aggregator import aggregate_term, generate_feedback, subject_breakdown, summarize_statuses
from core.analyzer import analyze_subject_trends, student_term_series
from core.cohort import build_student_rows, filter_students
from core.errors import ExportError, ValidationError
from core.grading import (
    AT_RISK,
    DOING_WELL,
    NEEDS_SUPPORT,
    NO_DATA,
    STATUS_ORDER,
    TERMS,
    round_percentage,
)
from core.profile import all_subjects, display_name


logger = logging.getLogger(__name__)


# ── Colour palette ──────────────────────────────────────────────────

BRAND_DARK = colors.HexColor("#1a1a2e")
BRAND_ACCENT = colors.HexColor("#0f3460")
LIGHT_GREY = colors.HexColor("#f5f5f5")
WHITE = colors.white

STATUS_COLORS = {
    DOING_WELL: "#22c55e",
    NEEDS_SUPPORT: "#fbbf24",
    AT_RISK: "#ef4444",
    NO_DATA: "#9ca3af",
}
STATUS_FILLS = {
    DOING_WELL: "d5f5e3",
    NEEDS_SUPPORT: "fef9e7",
    AT_RISK: "fadbd8",
    NO_DATA: "f3f4f6",
}

MPL_PALETTE = ["#0f3460", "#e94560", "#2ecc71", "#f39c12", "#9b59b6", "#1abc9c", "#34495e", "#e67e22", "#16a085"]

SELECTION_MODES = ("all", "selected", "status", "grade")

MEDIA_TYPES = {
    "pdf": "application/pdf",
    "csv": "text/csv",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}


# ── Helpers ─────────────────────────────────────────────────────────

def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _pct(value) -> str:
    if value is None or value == "":
        return "N/A"
    try:
        return f"{float(value):g}%"
    except (TypeError, ValueError):
        return "N/A"


def _footer(canvas, doc, program_name: str):
    """Draw programme name and date in the page footer."""
    canvas.saveState()
    canvas.setFont("Helvetica", 8)
    canvas.setFillColor(colors.grey)
    footer_text = f"{program_name} Academic Tracker | Generated {datetime.now().strftime('%d %B %Y, %H:%M')}"
    canvas.drawString(2 * cm, 1.2 * cm, footer_text)
    canvas.drawRightString(A4[0] - 2 * cm, 1.2 * cm, f"Page {doc.page}")
    canvas.restoreState()


def _chart_to_image(fig, width=14 * cm, height=8 * cm) -> Image:
    """Convert a matplotlib figure to a ReportLab Image."""
    buf = io.BytesIO()
    fig.savefig(buf, format="png", dpi=150, bbox_inches="tight")
    plt.close(fig)
    buf.seek(0)
    return Image(buf, width=width, height=height)


def _styles():
    ss = getSampleStyleSheet()
    return {
        "title": ParagraphStyle(
            "CustomTitle", parent=ss["Title"],
            fontSize=22, leading=28, textColor=BRAND_DARK,
            spaceAfter=4 * mm,
        ),
        "subtitle": ParagraphStyle(
            "CustomSubtitle", parent=ss["Normal"],
            fontSize=13, leading=17, textColor=BRAND_ACCENT,
            spaceAfter=3 * mm,
        ),
        "heading": ParagraphStyle(
            "CustomHeading", parent=ss["Heading2"],
            fontSize=13, leading=17, textColor=BRAND_DARK,
            spaceBefore=6 * mm, spaceAfter=3 * mm,
        ),
        "body": ParagraphStyle(
            "CustomBody", parent=ss["Normal"],
            fontSize=10, leading=14, spaceAfter=2 * mm,
        ),
        "small": ParagraphStyle(
            "CustomSmall", parent=ss["Normal"],
            fontSize=8, leading=10, textColor=colors.grey,
        ),
        "center": ParagraphStyle(
            "CenterBody", parent=ss["Normal"],
            fontSize=10, leading=14, alignment=TA_CENTER,
        ),
    }


def _status_table(data: List[List], status_col_idx: int, col_widths=None) -> Table:
    """Table whose body rows are tinted by the status in `status_col_idx`."""
    style_cmds = [
        ("BACKGROUND", (0, 0), (-1, 0), BRAND_DARK),
        ("TEXTCOLOR", (0, 0), (-1, 0), WHITE),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("FONTSIZE", (0, 0), (-1, 0), 9),
        ("FONTSIZE", (0, 1), (-1, -1), 8),
        ("ALIGN", (0, 0), (-1, -1), "CENTER"),
        ("ALIGN", (0, 1), (0, -1), "LEFT"),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
        ("GRID", (0, 0), (-1, -1), 0.5, colors.HexColor("#cccccc")),
        ("TOPPADDING", (0, 0), (-1, -1), 4),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
    ]
    for row_idx in range(1, len(data)):
        status = data[row_idx][status_col_idx]
        fill = STATUS_FILLS.get(status)
        if fill:
            style_cmds.append(("BACKGROUND", (0, row_idx), (-1, row_idx), colors.HexColor(f"#{fill}")))

    t = Table(data, colWidths=col_widths, repeatRows=1)
    t.setStyle(TableStyle(style_cmds))
    return t


# ── Charts ──────────────────────────────────────────────────────────

def _subject_bar_chart(subjects: List[Dict[str, Any]]) -> Optional[Image]:
    """Final percentage per subject, coloured by term status band."""
    scored = [s for s in subjects if s.get("final_percentage") is not None]
    if not scored:
        return None

    names = [s["name"] for s in scored]
    values = [float(s["final_percentage"]) for s in scored]
    bar_colors = [
        STATUS_COLORS[DOING_WELL] if v >= 60 else STATUS_COLORS[NEEDS_SUPPORT] if v >= 40 else STATUS_COLORS[AT_RISK]
        for v in values
    ]

    fig, ax = plt.subplots(figsize=(7.2, 3.6))
    bars = ax.bar(names, values, color=bar_colors, edgecolor="white", linewidth=0.8)
    for bar, val in zip(bars, values):
        ax.text(bar.get_x() + bar.get_width() / 2, bar.get_height() + 1.5,
                f"{val:.0f}%", ha="center", va="bottom", fontsize=8, fontweight="bold")
    ax.axhline(60, linestyle="--", color="#7f8c8d", linewidth=1)
    ax.axhline(40, linestyle=":", color="#7f8c8d", linewidth=1)
    ax.set_ylim(0, 105)
    ax.set_ylabel("Final %", fontsize=9)
    ax.set_title("Subject Results", fontsize=11, fontweight="bold")
    ax.spines["top"].set_visible(False)
    ax.spines["right"].set_visible(False)
    ax.tick_params(axis="x", rotation=28, labelsize=7)
    fig.tight_layout()
    return _chart_to_image(fig, width=15 * cm, height=7.5 * cm)


def _subject_trend_chart(trends: List[Dict[str, Any]]) -> Optional[Image]:
    """One line per subject across the four terms; gaps where a term has no value."""
    plotted = [t for t in trends if t.get("data_points", 0) >= 2]
    if not plotted:
        return None

    fig, ax = plt.subplots(figsize=(7.2, 3.8))
    for idx, trend in enumerate(plotted):
        ys = [v if v is not None else float("nan") for v in trend["term_performances"]]
        ax.plot(TERMS, ys, marker="o", linewidth=1.8, markersize=5,
                color=MPL_PALETTE[idx % len(MPL_PALETTE)], label=trend["name"])
    ax.set_xticks(TERMS)
    ax.set_xticklabels([f"Term {t}" for t in TERMS])
    ax.set_ylim(0, 105)
    ax.set_ylabel("Final %", fontsize=9)
    ax.set_title("Progress Across Terms", fontsize=11, fontweight="bold")
    ax.spines["top"].set_visible(False)
    ax.spines["right"].set_visible(False)
    ax.legend(fontsize=6, loc="upper left", bbox_to_anchor=(1.0, 1.0))
    fig.tight_layout()
    return _chart_to_image(fig, width=15 * cm, height=7.5 * cm)


def _status_count_chart(summary: Mapping[str, Any]) -> Optional[Image]:
    counts = summary.get("counts", {})
    labels = [label for label in STATUS_ORDER if counts.get(label)]
    if not labels:
        return None
    values = [counts[label] for label in labels]

    fig, ax = plt.subplots(figsize=(5.8, 3.2))
    bars = ax.bar(labels, values, color=[STATUS_COLORS[label] for label in labels])
    for b, v in zip(bars, values):
        ax.text(b.get_x() + b.get_width() / 2, b.get_height() + 0.1, str(v), ha="center", fontsize=8)
    ax.set_ylabel("Students")
    ax.set_title("Students by Status")
    ax.spines["top"].set_visible(False)
    ax.spines["right"].set_visible(False)
    fig.tight_layout()
    return _chart_to_image(fig, width=10 * cm, height=5.5 * cm)


# ═══════════════════════════════════════════════════════════════════
# 1. REPORT OBJECTS
# ═══════════════════════════════════════════════════════════════════

def _default_term(profile: Mapping[str, Any]) -> int:
    last = profile.get("last_term_updated")
    try:
        if int(last) in TERMS:
            return int(last)
    except (TypeError, ValueError):
        pass
    with_subjects = [t for t in TERMS if (profile["terms"].get(t) or {}).get("subjects")]
    return with_subjects[-1] if with_subjects else 1


def build_student_report(profile: Mapping[str, Any], term: Optional[int] = None) -> Dict[str, Any]:
    """Single-student report for one term, with cross-term context for charts."""
    term = term or _default_term(profile)
    if term not in TERMS:
        raise ValidationError(f"Invalid term number: {term}", field="term")

    subjects = (profile["terms"].get(term) or {}).get("subjects", [])
    aggregate = aggregate_term(subjects, term)
    breakdown = subject_breakdown(subjects, term)

    return {
        "student": {
            "id": profile.get("id"),
            "name": display_name(profile),
            "email": profile.get("email", ""),
            "school": profile.get("school", ""),
            "grade": profile.get("grade", ""),
            "average": aggregate["average"],
            "status": aggregate["status"],
        },
        "subjects": [
            {
                "name": s["name"],
                "level": s.get("level"),
                "final_percentage": s.get("final_percentage"),
                "grade_average": s.get("grade_average"),
                "term": term,
            }
            for s in subjects
        ],
        "term": term,
        "missing_subjects": aggregate["missing_subjects"],
        "feedback": generate_feedback(aggregate["status"], breakdown),
        "overall": {
            "average": round_percentage(profile.get("overall_average")) or 0,
            "status": profile.get("overall_performance_status", NO_DATA),
        },
        "subject_trends": analyze_subject_trends(all_subjects(profile)),
        "term_series": student_term_series(profile),
        "generatedAt": _now_iso(),
    }


def build_term_report(
    profiles: Iterable[Mapping[str, Any]],
    term: int,
    mode: str = "all",
    value: Optional[str] = None,
    student_ids: Optional[Sequence[str]] = None,
) -> Dict[str, Any]:
    """
    Bulk report for one term. Selection modes:
      all       every student
      selected  the ids in `student_ids`
      status    students whose term status equals `value`
      grade     students in grade `value`
    Raises ValidationError when nothing matches.
    """
    if term not in TERMS:
        raise ValidationError(f"Invalid term number: {term}", field="term")
    if mode not in SELECTION_MODES:
        raise ValidationError(
            f"Unknown selection mode '{mode}'. Use one of: {', '.join(SELECTION_MODES)}", field="mode"
        )

    rows = build_student_rows(profiles, term=term)
    if mode == "selected":
        if not student_ids:
            raise ValidationError("Select at least one student to include in the report.", field="student_ids")
        rows = filter_students(rows, student_ids=student_ids)
        description = f"{len(student_ids)} selected students"
    elif mode == "status":
        if not value:
            raise ValidationError("Choose a status to report on.", field="value")
        rows = filter_students(rows, status=value)
        description = f'students with "{value}" status'
    elif mode == "grade":
        if not value:
            raise ValidationError("Choose a grade to report on.", field="value")
        rows = filter_students(rows, grade=value)
        description = f"Grade {value} students"
    else:
        description = "all students"

    if not rows:
        raise ValidationError(f"No students match: {description} in Term {term}.", field="mode")

    rows = sorted(rows, key=lambda r: (str(r["name"]).lower(), str(r["id"])))
    students = [
        {
            "id": r["id"],
            "name": r["name"],
            "email": r["email"],
            "school": r["school"],
            "grade": r["grade"],
            "termAverage": round_percentage(r["average"]) or 0,
            "termStatus": r["status"],
        }
        for r in rows
    ]
    return {
        "students": students,
        "term": term,
        "generatedAt": _now_iso(),
        "summary": summarize_statuses(s["termStatus"] for s in students),
        "selection": {"mode": mode, "value": value, "description": description},
    }


# ═══════════════════════════════════════════════════════════════════
# 2. PDF
# ═══════════════════════════════════════════════════════════════════

def render_student_pdf(report: Mapping[str, Any], program_name: str = "TPP") -> bytes:
    st = _styles()
    story = []
    student = report["student"]
    term = report["term"]

    story.append(Paragraph(f"{program_name} Student Report", st["title"]))
    story.append(Paragraph(f"Term {term} Academic Performance", st["subtitle"]))
    story.append(Paragraph(datetime.now().strftime("%d %B %Y"), st["small"]))
    story.append(Spacer(1, 4 * mm))

    identity = [
        ["Student", student["name"], "Email", student.get("email") or "N/A"],
        ["School", student.get("school") or "N/A", "Grade", student.get("grade") or "N/A"],
    ]
    identity_table = Table(identity, colWidths=[2.6 * cm, 5.4 * cm, 2.2 * cm, 4.8 * cm])
    identity_table.setStyle(TableStyle([
        ("GRID", (0, 0), (-1, -1), 0.6, colors.HexColor("#d1d5db")),
        ("BACKGROUND", (0, 0), (-1, -1), colors.HexColor("#f8fafc")),
        ("FONTNAME", (0, 0), (0, -1), "Helvetica-Bold"),
        ("FONTNAME", (2, 0), (2, -1), "Helvetica-Bold"),
        ("FONTSIZE", (0, 0), (-1, -1), 9),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
        ("TOPPADDING", (0, 0), (-1, -1), 5),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 5),
    ]))
    story.append(identity_table)
    story.append(Spacer(1, 4 * mm))

    status = student["status"]
    result = [
        [f"Term {term} Average", f"{student['average']}%"],
        ["Status", status],
        ["Overall Average", f"{report['overall']['average']}%"],
        ["Overall Status", report["overall"]["status"]],
    ]
    result_table = Table(result, colWidths=[6.5 * cm, 8.5 * cm])
    result_table.setStyle(TableStyle([
        ("GRID", (0, 0), (-1, -1), 0.5, colors.HexColor("#d1d5db")),
        ("BACKGROUND", (0, 0), (0, -1), colors.HexColor("#eef2ff")),
        ("BACKGROUND", (1, 1), (1, 1), colors.HexColor(STATUS_COLORS.get(status, STATUS_COLORS[NO_DATA]))),
        ("FONTNAME", (0, 0), (0, -1), "Helvetica-Bold"),
        ("FONTSIZE", (0, 0), (-1, -1), 10),
        ("TOPPADDING", (0, 0), (-1, -1), 5),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 5),
    ]))
    story.append(result_table)
    story.append(Spacer(1, 3 * mm))
    story.append(Paragraph(escape(report.get("feedback", "")), st["body"]))

    story.append(Paragraph("Subject Results", st["heading"]))
    if report["subjects"]:
        data = [["Subject", "Level", "Final %", "Grade Average %", "Status"]]
        for s in report["subjects"]:
            pct = s.get("final_percentage")
            row_status = (
                NO_DATA if pct is None
                else DOING_WELL if pct >= 60
                else NEEDS_SUPPORT if pct >= 40
                else AT_RISK
            )
            data.append([s["name"], s.get("level") or "N/A", _pct(pct), _pct(s.get("grade_average")), row_status])
        story.append(_status_table(data, status_col_idx=4, col_widths=[6 * cm, 1.6 * cm, 2.2 * cm, 3 * cm, 3 * cm]))
        chart = _subject_bar_chart(report["subjects"])
        if chart:
            story.append(Spacer(1, 3 * mm))
            story.append(chart)
    else:
        story.append(Paragraph("No subjects captured for this term.", st["body"]))

    if report.get("missing_subjects"):
        story.append(Paragraph(
            "Missing percentage data: " + escape(", ".join(report["missing_subjects"])), st["small"]
        ))

    trend_chart = _subject_trend_chart(report.get("subject_trends", []))
    if trend_chart:
        story.append(Paragraph("Progress Across Terms", st["heading"]))
        story.append(trend_chart)

    buf = io.BytesIO()
    doc = SimpleDocTemplate(
        buf, pagesize=A4,
        leftMargin=2 * cm, rightMargin=2 * cm,
        topMargin=2 * cm, bottomMargin=2.5 * cm,
    )
    doc.build(
        story,
        onFirstPage=lambda c, d: _footer(c, d, program_name),
        onLaterPages=lambda c, d: _footer(c, d, program_name),
    )
    return buf.getvalue()


def render_term_pdf(report: Mapping[str, Any], program_name: str = "TPP") -> bytes:
    st = _styles()
    story = []
    term = report["term"]
    summary = report["summary"]

    story.append(Paragraph(f"{program_name} Term {term} Performance Report", st["title"]))
    story.append(Paragraph(f"Report on {escape(report['selection']['description'])}", st["subtitle"]))
    story.append(Paragraph(datetime.now().strftime("%d %B %Y"), st["small"]))

    story.append(Paragraph("Summary", st["heading"]))
    summary_data = [["Status", "Students", "Share"]]
    for label in STATUS_ORDER:
        summary_data.append([label, str(summary["counts"][label]), f"{summary['percentages'][label]}%"])
    summary_data.append(["Total", str(summary["total"]), "100%"])
    story.append(_status_table(summary_data, status_col_idx=0, col_widths=[5 * cm, 3 * cm, 3 * cm]))

    chart = _status_count_chart(summary)
    if chart:
        story.append(Spacer(1, 3 * mm))
        story.append(chart)

    counts = summary["counts"]
    if summary["total"]:
        story.append(Paragraph(
            f"{summary['percentages'][DOING_WELL]}% of students are performing well. "
            f"{counts[NEEDS_SUPPORT] + counts[AT_RISK]} students need additional support.",
            st["body"],
        ))

    story.append(Paragraph("Students", st["heading"]))
    data = [["Name", "School", "Grade", f"Term {term} Avg", "Status"]]
    for s in report["students"]:
        data.append([s["name"], s["school"] or "N/A", s["grade"] or "N/A", f"{s['termAverage']}%", s["termStatus"]])
    story.append(_status_table(data, status_col_idx=4, col_widths=[4.8 * cm, 4.4 * cm, 1.6 * cm, 2.2 * cm, 3 * cm]))

    buf = io.BytesIO()
    doc = SimpleDocTemplate(
        buf, pagesize=A4,
        leftMargin=1.5 * cm, rightMargin=1.5 * cm,
        topMargin=2 * cm, bottomMargin=2.5 * cm,
    )
    doc.build(
        story,
        onFirstPage=lambda c, d: _footer(c, d, program_name),
        onLaterPages=lambda c, d: _footer(c, d, program_name),
    )
    return buf.getvalue()


# ═══════════════════════════════════════════════════════════════════
# 3. CSV
# ═══════════════════════════════════════════════════════════════════

def _csv_rows(header: List[str], rows: Iterable[List[Any]]) -> str:
    """Plain header line, then rows with every text field double-quoted."""
    buf = io.StringIO()
    buf.write(",".join(header) + "\n")
    writer = csv.writer(buf, quoting=csv.QUOTE_NONNUMERIC, lineterminator="\n")
    for row in rows:
        writer.writerow(row)
    return buf.getvalue()


def render_term_csv(report: Mapping[str, Any]) -> str:
    term = report["term"]
    header = ["Name", "Email", "School", "Grade", f"Term {term} Average", f"Term {term} Status"]
    rows = [
        [s["name"], s["email"], s["school"], str(s["grade"]), int(s["termAverage"]), s["termStatus"]]
        for s in report["students"]
    ]
    return _csv_rows(header, rows)


def render_student_csv(report: Mapping[str, Any]) -> str:
    term = report["term"]
    student = report["student"]
    head = _csv_rows(
        ["Name", "Email", "School", "Grade", f"Term {term} Average", f"Term {term} Status"],
        [[student["name"], student.get("email", ""), student.get("school", ""), str(student.get("grade", "")),
          int(student["average"]), student["status"]]],
    )
    subjects = _csv_rows(
        ["Subject", "Level", "Final Percentage", "Grade Average"],
        [
            [
                s["name"],
                int(s["level"]) if s.get("level") is not None else "",
                s["final_percentage"] if s.get("final_percentage") is not None else "",
                s["grade_average"] if s.get("grade_average") is not None else "",
            ]
            for s in report["subjects"]
        ],
    )
    return head + "\n" + subjects


# ═══════════════════════════════════════════════════════════════════
# 4. EXCEL
# ═══════════════════════════════════════════════════════════════════

def render_term_excel(report: Mapping[str, Any]) -> bytes:
    """All students on one sheet, then one sheet per status that has students."""
    term = report["term"]
    header = ["Name", "Email", "School", "Grade", f"Term {term} Average", f"Term {term} Status"]

    header_font = Font(bold=True, color="FFFFFF", size=11)
    header_fill = PatternFill(start_color="1a1a2e", end_color="1a1a2e", fill_type="solid")
    thin_border = Border(
        left=Side(style="thin"), right=Side(style="thin"),
        top=Side(style="thin"), bottom=Side(style="thin"),
    )

    def _fill_sheet(ws, students):
        ws.append(header)
        for s in students:
            ws.append([s["name"], s["email"], s["school"], str(s["grade"]), s["termAverage"], s["termStatus"]])

        for cell in ws[1]:
            cell.font = header_font
            cell.fill = header_fill
            cell.alignment = Alignment(horizontal="center")
            cell.border = thin_border

        for row in ws.iter_rows(min_row=2, max_row=ws.max_row):
            fill_hex = STATUS_FILLS.get(row[5].value)
            for cell in row:
                cell.border = thin_border
                if fill_hex:
                    cell.fill = PatternFill(start_color=fill_hex, end_color=fill_hex, fill_type="solid")

        ws.freeze_panes = "A2"
        for col_cells in ws.columns:
            max_len = max(len(str(cell.value or "")) for cell in col_cells)
            ws.column_dimensions[col_cells[0].column_letter].width = min(max_len + 4, 40)

    wb = Workbook()
    ws_all = wb.active
    ws_all.title = "All Students"
    ws_all.sheet_properties.tabColor = "1a1a2e"
    _fill_sheet(ws_all, report["students"])

    for label in STATUS_ORDER:
        subset = [s for s in report["students"] if s["termStatus"] == label]
        if not subset:
            continue
        ws = wb.create_sheet(title=label)
        ws.sheet_properties.tabColor = STATUS_FILLS[label]
        _fill_sheet(ws, subset)

    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


# ═══════════════════════════════════════════════════════════════════
# 5. EXPORT WITH FALLBACK
# ═══════════════════════════════════════════════════════════════════

def _filename(report: Mapping[str, Any], kind: str, ext: str) -> str:
    stamp = datetime.now().strftime("%Y-%m-%d")
    if kind == "student":
        token = "".join(ch if ch.isalnum() else "_" for ch in report["student"]["name"]).strip("_") or "student"
        return f"{token}_Term{report['term']}_Report_{stamp}.{ext}"
    return f"Term{report['term']}_Students_Report_{stamp}.{ext}"


def export_report(
    report: Mapping[str, Any],
    kind: str,
    fmt: str = "pdf",
    program_name: str = "TPP",
) -> Tuple[bytes, str, str]:
    """
    Render `report` (kind "student" or "term") as `fmt`.
    Returns (content, media_type, filename). A failed PDF falls back to CSV.
    """
    csv_renderer = render_student_csv if kind == "student" else render_term_csv

    if fmt == "csv":
        try:
            return csv_renderer(report).encode("utf-8"), MEDIA_TYPES["csv"], _filename(report, kind, "csv")
        except Exception as exc:
            logger.error("CSV export failed", exc_info=True)
            raise ExportError(f"Could not generate the CSV report: {exc}")

    if fmt == "xlsx":
        if kind != "term":
            raise ValidationError("Excel export is only available for term reports.", field="format")
        try:
            return render_term_excel(report), MEDIA_TYPES["xlsx"], _filename(report, kind, "xlsx")
        except Exception as exc:
            logger.error("Excel export failed", exc_info=True)
            raise ExportError(f"Could not generate the Excel report: {exc}")

    if fmt != "pdf":
        raise ValidationError(f"Unsupported export format '{fmt}'. Use pdf, csv or xlsx.", field="format")

    pdf_renderer = render_student_pdf if kind == "student" else render_term_pdf
    try:
        return pdf_renderer(report, program_name), MEDIA_TYPES["pdf"], _filename(report, kind, "pdf")
    except Exception as pdf_exc:
        logger.warning("PDF export failed, falling back to CSV: %s", pdf_exc, exc_info=True)
        try:
            return csv_renderer(report).encode("utf-8"), MEDIA_TYPES["csv"], _filename(report, kind, "csv")
        except Exception as csv_exc:
            logger.error("CSV fallback failed", exc_info=True)
            raise ExportError(f"Report generation failed (PDF: {pdf_exc}; CSV: {csv_exc})")
