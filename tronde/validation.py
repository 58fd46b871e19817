"""
Shape and consistency checks shared by the option shuffler and the exam builder
"""

from typing import Optional

from tronde.errors import InvalidQuestionShape, ShuffleConsistencyViolation

QUESTION_TYPES = ("mcq", "msq", "sa")
OPTION_LABELS = ("A", "B", "C", "D")


def option_field(label: str) -> str:
    return f"option_{label.lower()}"


def _is_blank(value) -> bool:
    return value is None or str(value).strip() == ""


def normalize_label(value) -> Optional[str]:
    if value is None:
        return None
    label = str(value).strip().upper()
    return label if label in OPTION_LABELS else None


def check_mcq_shape(question: dict) -> str:
    """Return the normalized correct label of a single-choice question.

    Raises InvalidQuestionShape when an option is missing or the correct
    option is not one of A-D.
    """
    qid = question.get("id")
    for label in OPTION_LABELS:
        if _is_blank(question.get(option_field(label))):
            raise InvalidQuestionShape(f"Câu hỏi trắc nghiệm thiếu phương án {label}", qid)
    label = normalize_label(question.get("correct_option"))
    if label is None:
        raise InvalidQuestionShape(
            f"Đáp án đúng không hợp lệ: {question.get('correct_option')!r}", qid
        )
    return label


def check_question_shape(question: dict) -> None:
    qtype = question.get("type")
    if qtype not in QUESTION_TYPES:
        raise InvalidQuestionShape(f"Loại câu hỏi không hợp lệ: {qtype!r}", question.get("id"))
    if qtype == "mcq":
        check_mcq_shape(question)


def correct_value(question: dict):
    label = normalize_label(question.get("correct_option"))
    if label is None:
        return None
    return question.get(option_field(label))


def check_shuffle_consistency(question: dict, expect_shuffled: bool = False) -> None:
    """Verify a shuffled question still points at its original answer text.

    With `expect_shuffled`, an mcq question that carries no answer map is
    reported too, since it never went through the shuffler.
    """
    qid = question.get("id")
    answer_map = question.get("shuffled_answer_map")
    if answer_map is None:
        if expect_shuffled and question.get("type") == "mcq":
            raise ShuffleConsistencyViolation("Câu trắc nghiệm chưa được đảo phương án", qid)
        return

    if sorted(answer_map) != list(OPTION_LABELS) or sorted(answer_map.values()) != list(OPTION_LABELS):
        raise ShuffleConsistencyViolation(f"Bảng ánh xạ đáp án không phải hoán vị: {answer_map}", qid)

    original = question.get("original_correct_option")
    current = question.get("correct_option")
    if answer_map.get(original) != current:
        raise ShuffleConsistencyViolation(
            f"Đáp án gốc {original} phải chuyển thành {answer_map.get(original)}, nhưng đang là {current}",
            qid,
        )

    expected = question.get("original_correct_value")
    actual = correct_value(question)
    if actual != expected:
        raise ShuffleConsistencyViolation(
            f"Đáp án {current} có nội dung {actual!r}, khác đáp án gốc {expected!r}", qid
        )
