"""
Builds independent, validated exam copies from one question selection
"""

import copy
import logging
import random
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from tronde.errors import ShuffleConsistencyViolation
from tronde.shuffler import shuffle_options
from tronde.validation import check_question_shape, check_shuffle_consistency

logger = logging.getLogger(__name__)


@dataclass
class ExamCopy:
    exam_number: int
    questions: List[dict] = field(default_factory=list)


def validate_exam_copy(exam_copy: ExamCopy, options_shuffled: bool = False) -> None:
    for question in exam_copy.questions:
        try:
            check_shuffle_consistency(question, expect_shuffled=options_shuffled)
        except ShuffleConsistencyViolation as exc:
            logger.error(
                "Exam copy %d failed answer key validation at question %s: %s",
                exam_copy.exam_number,
                exc.question_id,
                exc.message,
            )
            raise


def build_exam_copies(
    questions: Sequence[dict],
    copy_count: int = 1,
    shuffle_question_order: bool = False,
    shuffle_mcq_options: bool = False,
    rng: Optional[random.Random] = None,
) -> List[ExamCopy]:
    """Produce `copy_count` exam copies, each deep-copied and shuffled on its own.

    A single generator is drawn from for every question of every copy, so
    no two shuffles reuse a permutation by construction. Any answer key
    inconsistency aborts the whole batch.
    """
    if copy_count < 1:
        raise ValueError("Số đề phải lớn hơn hoặc bằng 1")
    if not questions:
        raise ValueError("Không có câu hỏi nào để xuất")

    for question in questions:
        check_question_shape(question)

    rng = rng if rng is not None else random.Random()
    logger.info(
        "Building %d exam copies of %d questions (shuffle order=%s, shuffle options=%s)",
        copy_count,
        len(questions),
        shuffle_question_order,
        shuffle_mcq_options,
    )

    copies: List[ExamCopy] = []
    for number in range(1, copy_count + 1):
        items = copy.deepcopy(list(questions))
        if shuffle_question_order:
            rng.shuffle(items)
        if shuffle_mcq_options:
            items = [shuffle_options(q, rng) for q in items]
        exam_copy = ExamCopy(exam_number=number, questions=items)
        validate_exam_copy(exam_copy, options_shuffled=shuffle_mcq_options)
        copies.append(exam_copy)
    return copies
