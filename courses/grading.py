"""
Answer checking shared by course tests and challenge quizzes.
"""
from decimal import ROUND_HALF_UP, Decimal

MULTIPLE_CHOICE = 'MULTIPLE_CHOICE'
TRUE_FALSE = 'TRUE_FALSE'
SHORT_ANSWER = 'SHORT_ANSWER'


def _normalize(value):
    if value is None:
        return ''
    if isinstance(value, bool):
        return 'true' if value else 'false'
    return str(value).strip().lower()


def is_correct(question_type, correct_answer, given_answer):
    """
    Multiple choice and true/false answers must match exactly (ignoring
    case and surrounding whitespace). Short answers are accepted when either
    text contains the other.
    """
    expected = _normalize(correct_answer)
    given = _normalize(given_answer)
    if not given:
        return False
    if question_type == SHORT_ANSWER:
        return given in expected or expected in given
    return given == expected


def percentage(score, max_score):
    if not max_score:
        return 0
    return round_half_up(score / max_score * 100)


def round_half_up(value):
    """Round to the nearest integer with halves going up (62.5 -> 63)."""
    return int(Decimal(str(value)).quantize(Decimal('1'), rounding=ROUND_HALF_UP))
