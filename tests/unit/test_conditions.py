import pytest

from hrflow.conditions import ConditionError, evaluate

CONTEXT = {
    "score": 85,
    "stage": "HIRED",
    "candidate": {"skills": ["python", "sql"], "remote": False},
    "training_completed": True,
}


@pytest.mark.parametrize(
    "expression, expected",
    [
        ("score > 70", True),
        ("score <= 70", False),
        ("stage == 'HIRED'", True),
        ('stage != "HIRED"', False),
        ("training_completed", True),
        ("not training_completed", False),
        ("candidate.remote", False),
        ("candidate.skills contains 'python'", True),
        ('stage in ["OFFER", "HIRED"]', True),
        ('stage not in ["OFFER", "HIRED"]', False),
        ("missing_flag", False),
    ],
)
def test_string_expressions(expression, expected):
    assert evaluate(expression, CONTEXT) is expected


def test_word_operators_need_whitespace():
    assert evaluate("training_completed", {"training_completed": 1}) is True


def test_structured_expressions():
    expression = {
        "all": [
            {"field": "score", "op": "gte", "value": 80},
            {"any": [{"field": "stage", "value": "OFFER"}, {"field": "stage", "op": "eq", "value": "HIRED"}]},
            {"not": {"field": "candidate.remote"}},
        ]
    }
    assert evaluate(expression, CONTEXT) is True
    assert evaluate({"condition": "score > 90"}, CONTEXT) is False


def test_missing_fields_only_satisfy_negative_operators():
    assert evaluate({"field": "nope", "op": "eq", "value": 1}, CONTEXT) is False
    assert evaluate({"field": "nope", "op": "ne", "value": 1}, CONTEXT) is True
    assert evaluate({"field": "nope", "op": "exists"}, CONTEXT) is False


def test_incomparable_values_are_false():
    assert evaluate("stage > 3", CONTEXT) is False


@pytest.mark.parametrize("expression", ["", "(((", {"unknown": 1}, {"field": "score", "op": "approx"}, 42])
def test_malformed_expressions_raise(expression):
    with pytest.raises(ConditionError):
        evaluate(expression, CONTEXT)
