"""
Renders exam copies to TXT, DOCX and PDF, with answer keys that follow the
shuffled option labels
"""

import io
import logging
import math
import os
import random
import zipfile
from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, List, Literal, Optional, Sequence, Tuple

from docx import Document
from docx.enum.text import WD_ALIGN_PARAGRAPH
from pydantic import BaseModel, Field
from reportlab.lib.pagesizes import A4
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFont
from reportlab.pdfgen import canvas

from tronde.config import DEFAULT_EXAM_TITLE, MAX_EXAM_COUNT, PDF_FONT_CANDIDATES
from tronde.validation import OPTION_LABELS, option_field
from tronde.variants import ExamCopy, build_exam_copies

logger = logging.getLogger(__name__)

MEDIA_TYPES = {
    "txt": "text/plain",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "pdf": "application/pdf",
    "zip": "application/zip",
}

SECTION_TITLES = {
    "mcq": ("PHẦN I: TRẮC NGHIỆM", "Phần I: Trắc nghiệm"),
    "msq": ("PHẦN II: ĐÚNG - SAI", "Phần II: Đúng - sai"),
    "sa": ("PHẦN III: TRẢ LỜI NGẮN", "Phần III: Trả lời ngắn"),
}

FILE_STEM = "de-thi-toan"


class ExportOptions(BaseModel):
    format: Literal["txt", "docx", "pdf"] = "txt"
    exam_count: int = Field(1, ge=1, le=MAX_EXAM_COUNT)
    shuffle_questions: bool = False
    shuffle_mcq_options: bool = False
    include_answer_key: bool = True
    exam_title: Optional[str] = None
    exam_subtitle: Optional[str] = None
    organize_by_sections: bool = True


@dataclass
class ExportResult:
    content: bytes
    media_type: str
    filename: str


def group_by_section(questions: Sequence[dict]) -> Dict[str, List[dict]]:
    return {qtype: [q for q in questions if q.get("type") == qtype] for qtype in SECTION_TITLES}


def exam_heading(exam_copy: ExamCopy, options: ExportOptions) -> Tuple[str, str]:
    base_title = options.exam_title or DEFAULT_EXAM_TITLE
    title = f"{base_title} - Đề {exam_copy.exam_number}" if options.exam_count > 1 else base_title

    sections = group_by_section(exam_copy.questions)
    subtitle = options.exam_subtitle or (
        f"Tổng số câu: {len(exam_copy.questions)} "
        f"(MCQ: {len(sections['mcq'])}, MSQ: {len(sections['msq'])}, SA: {len(sections['sa'])})"
    )
    return title, subtitle


def display_answer(question: dict) -> str:
    """Answer key entry for the copy as printed"""
    answer = str(question.get("correct_option") or "")
    if question.get("type") != "mcq":
        return answer
    original = question.get("original_correct_option")
    if question.get("shuffled_answer_map") and original and original != answer:
        return f"{answer} (gốc: {original})"
    return answer


def _option_lines(question: dict) -> List[Tuple[str, str]]:
    if question.get("type") == "sa":
        return []
    lines = []
    for label in OPTION_LABELS:
        text = question.get(option_field(label))
        if text is None or text == "":
            continue
        prefix = f"{label.lower()})" if question.get("type") == "msq" else f"{label}."
        lines.append(("option", f"{prefix} {text}"))
    return lines


def exam_lines(exam_copy: ExamCopy, options: ExportOptions) -> List[Tuple[str, str]]:
    """Lay out one exam copy as (kind, text) lines shared by every writer"""
    title, subtitle = exam_heading(exam_copy, options)
    lines: List[Tuple[str, str]] = [("title", title), ("subtitle", subtitle), ("blank", "")]

    if options.organize_by_sections:
        sections = group_by_section(exam_copy.questions)
        ordered = [(qtype, items) for qtype, items in sections.items() if items]
    else:
        ordered = [(None, list(exam_copy.questions))]

    number = 1
    numbered: List[Tuple[Optional[str], List[Tuple[int, dict]]]] = []
    for qtype, items in ordered:
        if qtype:
            lines.append(("section", SECTION_TITLES[qtype][0]))
        block = []
        for question in items:
            lines.append(("question", f"Câu {number}: {question.get('question', '')}"))
            lines.extend(_option_lines(question))
            lines.append(("blank", ""))
            block.append((number, question))
            number += 1
        numbered.append((qtype, block))

    if options.include_answer_key:
        lines.append(("answer_heading", "ĐÁP ÁN"))
        for qtype, block in numbered:
            if qtype:
                lines.append(("section", SECTION_TITLES[qtype][1]))
            for n, question in block:
                lines.append(("answer", f"Câu {n}: {display_answer(question)}"))
    return lines


def render_txt(exam_copy: ExamCopy, options: ExportOptions) -> bytes:
    text = "\n".join(text for _, text in exam_lines(exam_copy, options))
    return (text + "\n").encode("utf-8")


def render_docx(exam_copy: ExamCopy, options: ExportOptions) -> bytes:
    doc = Document()
    for kind, text in exam_lines(exam_copy, options):
        if kind == "title":
            heading = doc.add_heading(text, level=1)
            heading.alignment = WD_ALIGN_PARAGRAPH.CENTER
        elif kind in ("subtitle", "answer_heading"):
            para = doc.add_paragraph()
            para.alignment = WD_ALIGN_PARAGRAPH.CENTER
            para.add_run(text).bold = kind == "answer_heading"
        elif kind in ("section", "question"):
            doc.add_paragraph().add_run(text).bold = kind == "section"
        elif kind == "blank":
            doc.add_paragraph("")
        else:
            doc.add_paragraph(text)
    buffer = io.BytesIO()
    doc.save(buffer)
    return buffer.getvalue()


PDF_FONT_NAME = "ExamFont"


@lru_cache(maxsize=1)
def exam_pdf_font() -> str:
    """Register the first Vietnamese-capable TTF found, else fall back to Helvetica"""
    path = next((p for p in PDF_FONT_CANDIDATES if os.path.exists(p)), None)
    if path is None:
        logger.warning("No Unicode TTF font found, PDF export falls back to Helvetica")
        return "Helvetica"
    if PDF_FONT_NAME not in pdfmetrics.getRegisteredFontNames():
        pdfmetrics.registerFont(TTFont(PDF_FONT_NAME, path))
    return PDF_FONT_NAME


def _split_long_token(token: str, fits) -> List[str]:
    pieces: List[str] = []
    current = ""
    for char in token:
        if current and not fits(current + char):
            pieces.append(current)
            current = char
        else:
            current += char
    pieces.append(current)
    return pieces


def wrap_for_pdf(text: str, font_name: str, font_size: int, max_width: float) -> List[str]:
    """Break text into lines no wider than max_width.

    Tokens wider than a whole line, such as long formulas, are cut by character.
    """
    def fits(candidate: str) -> bool:
        return pdfmetrics.stringWidth(candidate, font_name, font_size) <= max_width

    lines: List[str] = []
    current = ""
    for token in text.split():
        candidate = f"{current} {token}" if current else token
        if fits(candidate):
            current = candidate
            continue
        if current:
            lines.append(current)
        pieces = _split_long_token(token, fits) if not fits(token) else [token]
        lines.extend(pieces[:-1])
        current = pieces[-1]
    lines.append(current)
    return lines


def render_pdf(exam_copy: ExamCopy, options: ExportOptions) -> bytes:
    font_name = exam_pdf_font()
    buffer = io.BytesIO()
    c = canvas.Canvas(buffer, pagesize=A4)
    width, height = A4
    y = height - 60
    for kind, text in exam_lines(exam_copy, options):
        font_size = 14 if kind in ("title", "answer_heading") else 12
        if kind == "blank":
            y -= 10
            continue
        c.setFont(font_name, font_size)
        for part in wrap_for_pdf(text, font_name, font_size, width - 100):
            if y < 60:
                c.showPage()
                c.setFont(font_name, font_size)
                y = height - 60
            if kind in ("title", "subtitle", "answer_heading"):
                c.drawCentredString(width / 2, y, part)
            else:
                c.drawString(50, y, part)
            y -= 18
    c.save()
    return buffer.getvalue()


RENDERERS = {
    "txt": render_txt,
    "docx": render_docx,
    "pdf": render_pdf,
}


def export_filename(exam_copy: ExamCopy, options: ExportOptions) -> str:
    if options.exam_count > 1:
        return f"{FILE_STEM}-{exam_copy.exam_number}.{options.format}"
    return f"{FILE_STEM}.{options.format}"


def export_exams(
    questions: Sequence[dict],
    options: ExportOptions,
    rng: Optional[random.Random] = None,
) -> ExportResult:
    """Build every exam copy and render it; several copies come back as one zip"""
    copies = build_exam_copies(
        questions,
        copy_count=options.exam_count,
        shuffle_question_order=options.shuffle_questions,
        shuffle_mcq_options=options.shuffle_mcq_options,
        rng=rng,
    )
    render = RENDERERS[options.format]

    if len(copies) == 1:
        return ExportResult(
            content=render(copies[0], options),
            media_type=MEDIA_TYPES[options.format],
            filename=export_filename(copies[0], options),
        )

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
        for exam_copy in copies:
            archive.writestr(export_filename(exam_copy, options), render(exam_copy, options))
    logger.info("Exported %d exam copies as %s", len(copies), options.format)
    return ExportResult(content=buffer.getvalue(), media_type=MEDIA_TYPES["zip"], filename=f"{FILE_STEM}.zip")


def export_preview(questions: Sequence[dict], options: ExportOptions) -> dict:
    sections = group_by_section(questions)
    total = len(questions)

    # rough: 200 chars of stem and 400 of options per question
    size_kb = math.ceil(total * 600 * options.exam_count / 1024)
    seconds = max(1, math.ceil(total / 50)) * options.exam_count

    if options.shuffle_questions and options.shuffle_mcq_options:
        shuffle_info = "Đảo câu hỏi và đáp án"
    elif options.shuffle_questions:
        shuffle_info = "Đảo câu hỏi"
    elif options.shuffle_mcq_options:
        shuffle_info = "Đảo đáp án"
    else:
        shuffle_info = "Không đảo"

    return {
        "total_questions": total,
        "questions_by_type": {qtype: len(items) for qtype, items in sections.items()},
        "estimated_file_size": f"{size_kb / 1024:.1f}MB" if size_kb > 1024 else f"{size_kb}KB",
        "estimated_time": f"{math.ceil(seconds / 60)} phút" if seconds > 60 else f"{seconds} giây",
        "shuffle_info": shuffle_info,
    }
