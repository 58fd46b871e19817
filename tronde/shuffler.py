"""
Answer-key-preserving option shuffler for single-choice questions
"""

import logging
import random
from typing import Optional

from tronde.validation import OPTION_LABELS, check_mcq_shape, option_field

logger = logging.getLogger(__name__)


def shuffle_options(question: dict, rng: Optional[random.Random] = None) -> dict:
    """Return a copy of an mcq question with its four options permuted.

    The correct answer is followed by its position in the canonical A-D
    order, never by its text, so duplicate option texts cannot confuse the
    new answer key. Questions of any other type are returned unchanged.
    """
    if question.get("type") != "mcq":
        return question

    correct_label = check_mcq_shape(question)
    rng = rng if rng is not None else random.Random()

    values = [question[option_field(label)] for label in OPTION_LABELS]
    correct_index = OPTION_LABELS.index(correct_label)

    # order[new_position] = original index
    order = list(range(len(OPTION_LABELS)))
    rng.shuffle(order)

    shuffled = dict(question)
    answer_map = {}
    for new_position, original_index in enumerate(order):
        new_label = OPTION_LABELS[new_position]
        shuffled[option_field(new_label)] = values[original_index]
        answer_map[OPTION_LABELS[original_index]] = new_label

    shuffled["correct_option"] = OPTION_LABELS[order.index(correct_index)]
    shuffled["original_correct_option"] = correct_label
    shuffled["original_correct_value"] = values[correct_index]
    shuffled["shuffled_answer_map"] = answer_map

    logger.debug(
        "Shuffled options of question %s: %s (correct %s -> %s)",
        question.get("id"),
        answer_map,
        correct_label,
        shuffled["correct_option"],
    )
    return shuffled
