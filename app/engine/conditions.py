"""
Follow-up trigger conditions.

Catalogue rows store trigger rules as JSON. They are parsed once into the
small typed structures below and evaluated by a pure function against the
answers recorded so far, so nothing untyped flows through the engine.

Accepted JSON shapes (on the follow-up question's own row):

    {"question_id": "1.1", "operator": "gte", "threshold": 4}
    {"any": [<condition>, ...]}
    {"all": [<condition>, ...]}

and, on a parent question, the legacy seeding format which lists the
follow-ups it unlocks:

    {"conditions": [{"minScore": 4, "followUpQuestions": ["vision_challenges"]}]}
"""
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple, Union

SCORE_OPERATORS = {
    'gte': lambda score, t: score >= t,
    'gt':  lambda score, t: score > t,
    'lte': lambda score, t: score <= t,
    'lt':  lambda score, t: score < t,
    'eq':  lambda score, t: score == t,
    'ne':  lambda score, t: score != t,
}
TEXT_OPERATORS = ('answered', 'contains')
OPERATORS = tuple(SCORE_OPERATORS) + TEXT_OPERATORS


class ConditionError(ValueError):
    """Malformed trigger rule in the catalogue."""


@dataclass(frozen=True)
class Answer:
    score: Optional[int] = None
    response: Optional[str] = None

    @property
    def is_answered(self):
        return self.score is not None or bool((self.response or '').strip())


@dataclass(frozen=True)
class Condition:
    question_id: str
    operator: str
    threshold: Union[int, float, str, None] = None


@dataclass(frozen=True)
class AnyOf:
    conditions: Tuple['Rule', ...]


@dataclass(frozen=True)
class AllOf:
    conditions: Tuple['Rule', ...]


Rule = Union[Condition, AnyOf, AllOf]


def parse_condition(raw) -> Rule:
    """Parse one JSON trigger rule. Raises ConditionError on bad input."""
    if not isinstance(raw, dict):
        raise ConditionError(f"Condition must be an object, got {type(raw).__name__}")

    if 'any' in raw or 'all' in raw:
        key = 'any' if 'any' in raw else 'all'
        items = raw[key]
        if not isinstance(items, list) or not items:
            raise ConditionError(f"'{key}' needs a non-empty list")
        parsed = tuple(parse_condition(item) for item in items)
        return AnyOf(parsed) if key == 'any' else AllOf(parsed)

    question_id = raw.get('question_id') or raw.get('questionId')
    if not question_id:
        raise ConditionError(f"Condition missing question_id: {raw}")

    operator = raw.get('operator', 'gte')
    if operator not in OPERATORS:
        raise ConditionError(f"Unknown operator '{operator}'")

    threshold = raw.get('threshold')
    if operator in SCORE_OPERATORS:
        if not isinstance(threshold, (int, float)) or isinstance(threshold, bool):
            raise ConditionError(f"Operator '{operator}' needs a numeric threshold")
    elif operator == 'contains' and not isinstance(threshold, str):
        raise ConditionError("Operator 'contains' needs a string threshold")

    return Condition(str(question_id), operator, threshold)


def legacy_triggers(parent_question_id: str, raw) -> Dict[str, Rule]:
    """
    Invert a parent-side {conditions: [{minScore, followUpQuestions}]} rule
    into follow-up id → Condition. Several entries unlocking the same
    follow-up are OR-ed.
    """
    triggers: Dict[str, List[Rule]] = {}
    for entry in (raw or {}).get('conditions', []):
        min_score = entry.get('minScore')
        if not isinstance(min_score, (int, float)):
            raise ConditionError(f"Legacy condition missing minScore: {entry}")
        cond = Condition(str(parent_question_id), 'gte', min_score)
        for follow_up_id in entry.get('followUpQuestions', []):
            triggers.setdefault(str(follow_up_id), []).append(cond)
    return {
        fid: conds[0] if len(conds) == 1 else AnyOf(tuple(conds))
        for fid, conds in triggers.items()
    }


def is_legacy(raw) -> bool:
    return isinstance(raw, dict) and 'conditions' in raw


def evaluate(rule: Rule, answers: Dict[str, Answer]) -> bool:
    """True if the rule holds for the given question_id → Answer map."""
    if isinstance(rule, AnyOf):
        return any(evaluate(r, answers) for r in rule.conditions)
    if isinstance(rule, AllOf):
        return all(evaluate(r, answers) for r in rule.conditions)

    answer = answers.get(rule.question_id)
    if answer is None or not answer.is_answered:
        return False

    if rule.operator == 'answered':
        return True
    if rule.operator == 'contains':
        return rule.threshold.lower() in (answer.response or '').lower()

    if answer.score is None:
        return False
    return SCORE_OPERATORS[rule.operator](answer.score, rule.threshold)


def referenced_questions(rule: Rule) -> List[str]:
    """Question ids a rule reads, in first-seen order."""
    if isinstance(rule, Condition):
        return [rule.question_id]
    seen = []
    for r in rule.conditions:
        for qid in referenced_questions(r):
            if qid not in seen:
                seen.append(qid)
    return seen
