"""
Gemini client that turns a prompt into question dicts
"""

import json
import logging
import re
from typing import List, Optional, Tuple

import httpx

from tronde.config import GEMINI_API_BASE, GEMINI_MODEL
from tronde.errors import InvalidQuestionShape
from tronde.validation import check_question_shape

logger = logging.getLogger(__name__)

JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


def build_generation_prompt(
    topic: str,
    grade: int,
    mcq_count: int = 5,
    msq_count: int = 0,
    sa_count: int = 0,
) -> str:
    prompt = f"""Bạn là giáo viên Toán lớp {grade} ở Việt Nam. Hãy soạn câu hỏi về chủ đề: {topic}.

Số lượng:
- {mcq_count} câu trắc nghiệm một đáp án đúng (type "mcq")
- {msq_count} câu đúng - sai (type "msq")
- {sa_count} câu trả lời ngắn (type "sa")
"""
    prompt += """
Yêu cầu:
- Câu "mcq" có đủ 4 phương án option_a, option_b, option_c, option_d và correct_option là một chữ A, B, C hoặc D
- Câu "msq" có 4 mệnh đề option_a..option_d, correct_option liệt kê các chữ đúng, cách nhau bởi dấu phẩy
- Câu "sa" không có phương án, correct_option là đáp số ngắn gọn
- Công thức toán viết bằng LaTeX trong dấu $...$

Trả về JSON với format:
{
    "questions": [
        {
            "id": "mcq1",
            "type": "mcq",
            "question": "nội dung câu hỏi",
            "option_a": "...",
            "option_b": "...",
            "option_c": "...",
            "option_d": "...",
            "correct_option": "B",
            "explanation": "giải thích ngắn"
        }
    ]
}

Chỉ trả về JSON."""
    return prompt


def call_gemini(
    prompt: str,
    api_key: Optional[str],
    model: str = GEMINI_MODEL,
    client: Optional[httpx.Client] = None,
) -> Tuple[Optional[str], Optional[str]]:
    if not api_key:
        return None, "missing_gemini_api_key"
    url = f"{GEMINI_API_BASE}/models/{model}:generateContent?key={api_key}"
    payload = {
        "contents": [{"parts": [{"text": prompt}]}],
        "generationConfig": {
            "responseMimeType": "application/json",
            "temperature": 0.8,
        },
    }
    owns_client = client is None
    client = client or httpx.Client(timeout=120)
    try:
        response = client.post(url, json=payload)
    except httpx.HTTPError as exc:
        logger.warning("Gemini request failed: %s", exc)
        return None, f"Không kết nối được Gemini: {exc}"
    finally:
        if owns_client:
            client.close()

    if response.status_code != 200:
        try:
            msg = response.json().get("error", {}).get("message", "")
        except ValueError:
            msg = response.text[:200]
        return None, f"{response.status_code}: {msg}"
    try:
        text = response.json()["candidates"][0]["content"]["parts"][0]["text"]
        return text.strip(), None
    except (KeyError, IndexError, ValueError):
        return None, "Không parse được phản hồi Gemini"


TEXT_FIELDS = ("question", "option_a", "option_b", "option_c", "option_d", "correct_option", "explanation")


def _normalize_generated(question: dict) -> None:
    """Coerce AI field values to the text columns of the question bank.

    Raises InvalidQuestionShape for a blank stem or a field that is not text.
    """
    qid = question.get("id")
    answer = question.get("correct_option")
    if question.get("type") == "msq" and isinstance(answer, list):
        question["correct_option"] = ",".join(str(label).strip().upper() for label in answer)

    for key in TEXT_FIELDS:
        value = question.get(key)
        if value is None:
            continue
        if isinstance(value, (dict, list)):
            raise InvalidQuestionShape(f"Trường {key} phải là chuỗi", qid)
        question[key] = str(value)

    if not (question.get("question") or "").strip():
        raise InvalidQuestionShape("Thiếu nội dung câu hỏi", qid)


def parse_generated_questions(text: str) -> Tuple[List[dict], List[str]]:
    """Extract question dicts from an AI reply, dropping malformed items"""
    match = JSON_OBJECT_RE.search(text or "")
    if not match:
        return [], ["Không tìm thấy JSON trong phản hồi AI"]
    try:
        payload = json.loads(match.group())
    except json.JSONDecodeError as exc:
        return [], [f"Lỗi parse JSON: {exc}"]

    items = payload.get("questions") if isinstance(payload, dict) else None
    if not isinstance(items, list):
        return [], ["Phản hồi AI thiếu danh sách 'questions'"]

    questions: List[dict] = []
    warnings: List[str] = []
    for n, item in enumerate(items, 1):
        if not isinstance(item, dict):
            warnings.append(f"Bỏ qua mục {n}: không phải object")
            continue
        question = dict(item)
        if not question.get("id"):
            question["id"] = f"ai-{n}"
        try:
            _normalize_generated(question)
            check_question_shape(question)
        except InvalidQuestionShape as exc:
            warnings.append(f"Bỏ qua câu {question['id']}: {exc.message}")
            continue
        if question["type"] == "mcq":
            question["correct_option"] = question["correct_option"].strip().upper()
        questions.append(question)

    if warnings:
        logger.info("Dropped %d malformed AI questions", len(warnings))
    return questions, warnings
