"""Tests for app.engine.conditions — parsing and evaluating follow-up triggers."""
import pytest

from app.engine.conditions import (
    Answer, Condition, AnyOf, AllOf, ConditionError,
    parse_condition, legacy_triggers, is_legacy, evaluate, referenced_questions,
)


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

class TestParseCondition:
    """JSON rule → typed condition."""

    def test_simple_condition(self):
        rule = parse_condition({'question_id': '1.1', 'operator': 'gte', 'threshold': 4})
        assert rule == Condition('1.1', 'gte', 4)

    def test_camel_case_question_id(self):
        rule = parse_condition({'questionId': '2.1', 'operator': 'lt', 'threshold': 2})
        assert rule.question_id == '2.1'

    def test_operator_defaults_to_gte(self):
        rule = parse_condition({'question_id': '1.1', 'threshold': 3})
        assert rule.operator == 'gte'

    def test_numeric_question_id_becomes_string(self):
        rule = parse_condition({'question_id': 7, 'operator': 'eq', 'threshold': 1})
        assert rule.question_id == '7'

    def test_any_and_all(self):
        rule = parse_condition({'any': [
            {'question_id': 'a', 'operator': 'gte', 'threshold': 4},
            {'all': [
                {'question_id': 'b', 'operator': 'answered'},
                {'question_id': 'c', 'operator': 'contains', 'threshold': 'cash'},
            ]},
        ]})
        assert isinstance(rule, AnyOf)
        assert isinstance(rule.conditions[1], AllOf)

    def test_missing_question_id(self):
        with pytest.raises(ConditionError):
            parse_condition({'operator': 'gte', 'threshold': 4})

    def test_unknown_operator(self):
        with pytest.raises(ConditionError):
            parse_condition({'question_id': '1.1', 'operator': 'between', 'threshold': 4})

    def test_score_operator_needs_number(self):
        with pytest.raises(ConditionError):
            parse_condition({'question_id': '1.1', 'operator': 'gte', 'threshold': 'four'})

    def test_boolean_threshold_rejected(self):
        with pytest.raises(ConditionError):
            parse_condition({'question_id': '1.1', 'operator': 'eq', 'threshold': True})

    def test_contains_needs_string(self):
        with pytest.raises(ConditionError):
            parse_condition({'question_id': '1.1', 'operator': 'contains', 'threshold': 3})

    def test_empty_any_rejected(self):
        with pytest.raises(ConditionError):
            parse_condition({'any': []})

    def test_non_dict_rejected(self):
        with pytest.raises(ConditionError):
            parse_condition(['1.1', 'gte', 4])

    def test_condition_error_is_value_error(self):
        assert issubclass(ConditionError, ValueError)


class TestLegacyTriggers:
    """Parent-side {conditions: [{minScore, followUpQuestions}]} rules."""

    def test_inverts_to_follow_up_map(self):
        raw = {'conditions': [{'minScore': 4, 'followUpQuestions': ['vision_challenges', 'vision_timeline']}]}
        triggers = legacy_triggers('1.1', raw)
        assert triggers == {
            'vision_challenges': Condition('1.1', 'gte', 4),
            'vision_timeline': Condition('1.1', 'gte', 4),
        }

    def test_repeated_follow_up_is_ored(self):
        raw = {'conditions': [
            {'minScore': 5, 'followUpQuestions': ['x']},
            {'minScore': 1, 'followUpQuestions': ['x']},
        ]}
        rule = legacy_triggers('3.1', raw)['x']
        assert isinstance(rule, AnyOf)
        assert len(rule.conditions) == 2

    def test_missing_min_score(self):
        with pytest.raises(ConditionError):
            legacy_triggers('1.1', {'conditions': [{'followUpQuestions': ['x']}]})

    def test_is_legacy(self):
        assert is_legacy({'conditions': []})
        assert not is_legacy({'question_id': '1.1'})
        assert not is_legacy(None)


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------

class TestEvaluate:
    """Pure evaluation against a question_id → Answer map."""

    def test_score_comparisons(self):
        answers = {'q': Answer(score=4)}
        assert evaluate(Condition('q', 'gte', 4), answers)
        assert not evaluate(Condition('q', 'gt', 4), answers)
        assert evaluate(Condition('q', 'lte', 4), answers)
        assert not evaluate(Condition('q', 'lt', 4), answers)
        assert evaluate(Condition('q', 'eq', 4), answers)
        assert evaluate(Condition('q', 'ne', 3), answers)

    def test_unanswered_is_false(self):
        assert not evaluate(Condition('q', 'lte', 5), {})
        assert not evaluate(Condition('q', 'answered'), {'q': Answer(response='   ')})

    def test_text_only_answer_fails_score_operator(self):
        assert not evaluate(Condition('q', 'gte', 1), {'q': Answer(response='We forecast weekly')})

    def test_answered_and_contains(self):
        answers = {'q': Answer(response='Mostly CASH flow issues')}
        assert evaluate(Condition('q', 'answered'), answers)
        assert evaluate(Condition('q', 'contains', 'cash'), answers)
        assert not evaluate(Condition('q', 'contains', 'hiring'), answers)

    def test_any_all(self):
        answers = {'a': Answer(score=5), 'b': Answer(score=1)}
        high_a = Condition('a', 'gte', 4)
        high_b = Condition('b', 'gte', 4)
        assert evaluate(AnyOf((high_a, high_b)), answers)
        assert not evaluate(AllOf((high_a, high_b)), answers)

    def test_referenced_questions(self):
        rule = AnyOf((Condition('a', 'gte', 4), AllOf((Condition('b', 'answered'), Condition('a', 'lt', 2)))))
        assert referenced_questions(rule) == ['a', 'b']
