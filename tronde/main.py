import io
import logging
from typing import Any, Dict, List, Optional

import httpx
from fastapi import Depends, FastAPI, HTTPException
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from tronde import __version__
from tronde.ai import build_generation_prompt, call_gemini, parse_generated_questions
from tronde.config import API_KEY_PROVIDERS, GEMINI_MODEL, MAX_EXAM_COUNT, ApiKeyStore, configure_logging
from tronde.database import QuestionCRUD, get_db, init_db, question_to_dict
from tronde.errors import InvalidQuestionShape, ShuffleConsistencyViolation
from tronde.export import ExportOptions, export_exams, export_preview
from tronde.validation import check_question_shape
from tronde.variants import build_exam_copies

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="Trộn đề", version=__version__)

init_db()

QUESTION_COLUMNS = (
    "question", "type", "option_a", "option_b", "option_c", "option_d", "correct_option",
    "explanation", "subject", "chapter", "lesson", "grade", "difficulty", "source",
)


class QuestionCreate(BaseModel):
    question: str
    type: str = "mcq"
    option_a: Optional[str] = None
    option_b: Optional[str] = None
    option_c: Optional[str] = None
    option_d: Optional[str] = None
    correct_option: Optional[str] = None
    explanation: Optional[str] = None
    subject: str = "toan_hoc"
    chapter: Optional[str] = None
    lesson: Optional[str] = None
    grade: Optional[str] = None
    difficulty: str = "medium"
    source: Optional[str] = "manual"


class BulkSaveRequest(BaseModel):
    questions: List[QuestionCreate]


class QuestionSelection(BaseModel):
    question_ids: Optional[List[int]] = None
    questions: Optional[List[Dict[str, Any]]] = None


class VariantRequest(QuestionSelection):
    copy_count: int = Field(1, ge=1, le=MAX_EXAM_COUNT)
    shuffle_question_order: bool = False
    shuffle_mcq_options: bool = False


class ExportRequest(QuestionSelection):
    options: ExportOptions = Field(default_factory=ExportOptions)


class AIGenerateRequest(BaseModel):
    topic: str
    grade: int = Field(10, ge=1, le=12)
    mcq_count: int = Field(5, ge=0, le=50)
    msq_count: int = Field(0, ge=0, le=50)
    sa_count: int = Field(0, ge=0, le=50)
    save: bool = False
    chapter: Optional[str] = None
    lesson: Optional[str] = None


class ApiKeyUpdate(BaseModel):
    api_key: str


def get_key_store() -> ApiKeyStore:
    return ApiKeyStore()


def get_http_client():
    with httpx.Client(timeout=120) as client:
        yield client


def _question_kwargs(data: dict) -> dict:
    return {k: data.get(k) for k in QUESTION_COLUMNS if data.get(k) is not None}


def _resolve_selection(selection: QuestionSelection, db: Session) -> List[dict]:
    if selection.question_ids:
        rows = QuestionCRUD.get_many(db, selection.question_ids)
        found = {q.id for q in rows}
        missing = [qid for qid in selection.question_ids if qid not in found]
        if missing:
            raise HTTPException(status_code=404, detail=f"Không tìm thấy câu hỏi: {missing}")
        return [question_to_dict(q) for q in rows]
    if selection.questions:
        return selection.questions
    raise HTTPException(status_code=400, detail="Không có câu hỏi nào để xuất")


def _run_builder(build, *args, **kwargs):
    """Call the exam builder, mapping its errors to HTTP responses"""
    try:
        return build(*args, **kwargs)
    except InvalidQuestionShape as exc:
        logger.warning("Rejected question %s: %s", exc.question_id, exc.message)
        raise HTTPException(status_code=400, detail=exc.to_dict())
    except ShuffleConsistencyViolation as exc:
        logger.error("Export aborted at question %s: %s", exc.question_id, exc.message)
        raise HTTPException(status_code=500, detail=exc.to_dict())
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


@app.get("/version")
def version() -> dict:
    return {"version": __version__}


# ============================================================================
# QUESTION BANK APIs
# ============================================================================

@app.get("/api/questions")
def get_questions(
    skip: int = 0,
    limit: int = 100,
    subject: Optional[str] = None,
    chapter: Optional[str] = None,
    lesson: Optional[str] = None,
    question_type: Optional[str] = None,
    difficulty: Optional[str] = None,
    search: Optional[str] = None,
    db: Session = Depends(get_db),
):
    """Get all questions with optional filters"""
    filters = {
        "subject": subject,
        "chapter": chapter,
        "lesson": lesson,
        "question_type": question_type,
        "difficulty": difficulty,
        "search": search,
    }
    questions = QuestionCRUD.get_all(db, skip=skip, limit=limit, **filters)
    return {
        "questions": [question_to_dict(q) for q in questions],
        "total": QuestionCRUD.count(db, **filters),
    }


@app.get("/api/questions/{question_id}")
def get_question(question_id: int, db: Session = Depends(get_db)):
    question = QuestionCRUD.get(db, question_id)
    if not question:
        raise HTTPException(status_code=404, detail="Không tìm thấy câu hỏi")
    return question_to_dict(question)


@app.post("/api/questions")
def create_question(data: QuestionCreate, db: Session = Depends(get_db)):
    """Create a new question"""
    fields = _question_kwargs(data.dict())
    _run_builder(check_question_shape, fields)
    question = QuestionCRUD.create(db, **fields)
    return {"ok": True, "id": question.id, "message": "Đã lưu câu hỏi"}


@app.post("/api/questions/bulk")
def bulk_create_questions(data: BulkSaveRequest, db: Session = Depends(get_db)):
    """Create multiple questions at once"""
    questions_data = [_question_kwargs(q.dict()) for q in data.questions]
    for fields in questions_data:
        _run_builder(check_question_shape, fields)
    questions = QuestionCRUD.bulk_create(db, questions_data)
    return {"ok": True, "count": len(questions), "message": f"Đã lưu {len(questions)} câu hỏi"}


@app.delete("/api/questions/{question_id}")
def delete_question(question_id: int, db: Session = Depends(get_db)):
    if QuestionCRUD.delete(db, question_id):
        return {"ok": True, "message": "Đã xóa câu hỏi"}
    raise HTTPException(status_code=404, detail="Không tìm thấy câu hỏi")


# ============================================================================
# EXAM VARIANT AND EXPORT APIs
# ============================================================================

@app.post("/api/exams/variants")
def create_exam_variants(data: VariantRequest, db: Session = Depends(get_db)):
    """Build shuffled exam copies and return them as JSON"""
    questions = _resolve_selection(data, db)
    copies = _run_builder(
        build_exam_copies,
        questions,
        copy_count=data.copy_count,
        shuffle_question_order=data.shuffle_question_order,
        shuffle_mcq_options=data.shuffle_mcq_options,
    )
    return {
        "copies": [{"exam_number": c.exam_number, "questions": c.questions} for c in copies],
    }


@app.post("/api/exams/export")
def export_exam_copies(data: ExportRequest, db: Session = Depends(get_db)):
    """Export one or more exam copies as a downloadable file"""
    questions = _resolve_selection(data, db)
    result = _run_builder(export_exams, questions, data.options)
    return StreamingResponse(
        io.BytesIO(result.content),
        media_type=result.media_type,
        headers={"Content-Disposition": f"attachment; filename={result.filename}"},
    )


@app.post("/api/exams/export/preview")
def preview_export(data: ExportRequest, db: Session = Depends(get_db)):
    questions = _resolve_selection(data, db)
    return export_preview(questions, data.options)


# ============================================================================
# AI GENERATION APIs
# ============================================================================

@app.post("/api/ai/generate")
def ai_generate(
    data: AIGenerateRequest,
    db: Session = Depends(get_db),
    store: ApiKeyStore = Depends(get_key_store),
    client: httpx.Client = Depends(get_http_client),
):
    """Ask Gemini for new questions, optionally saving them to the bank"""
    if not store.has("gemini"):
        return {"ok": False, "questions": [], "message": "Chưa cấu hình Gemini API key nên AI không được dùng."}

    prompt = build_generation_prompt(data.topic, data.grade, data.mcq_count, data.msq_count, data.sa_count)
    text, err = call_gemini(prompt, store.get("gemini"), GEMINI_MODEL, client=client)
    if not text:
        msg = f"Không nhận được phản hồi từ AI. {err}" if err else "Không nhận được phản hồi từ AI."
        return {"ok": False, "questions": [], "message": msg}

    questions, warnings = parse_generated_questions(text)
    result = {"ok": True, "questions": questions, "warnings": warnings}

    if data.save and questions:
        rows = []
        for q in questions:
            fields = _question_kwargs(q)
            fields.update(source="ai", grade=str(data.grade))
            if data.chapter:
                fields["chapter"] = data.chapter
            if data.lesson:
                fields["lesson"] = data.lesson
            rows.append(fields)
        saved = QuestionCRUD.bulk_create(db, rows)
        result["saved_ids"] = [q.id for q in saved]
        result["message"] = f"Đã lưu {len(saved)} câu hỏi"
    return result


# ============================================================================
# SETTINGS APIs
# ============================================================================

@app.get("/api/settings/api-keys")
def get_api_keys(store: ApiKeyStore = Depends(get_key_store)) -> dict:
    return {
        provider: {"configured": store.has(provider), "key": store.masked(provider)}
        for provider in API_KEY_PROVIDERS
    }


@app.put("/api/settings/api-keys/{provider}")
def update_api_key(provider: str, data: ApiKeyUpdate, store: ApiKeyStore = Depends(get_key_store)) -> dict:
    try:
        store.set(provider, data.api_key)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return {"ok": True, "key": store.masked(provider)}


@app.delete("/api/settings/api-keys/{provider}")
def delete_api_key(provider: str, store: ApiKeyStore = Depends(get_key_store)) -> dict:
    try:
        store.remove(provider)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return {"ok": True}
