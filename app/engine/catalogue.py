"""
Catalogue seeding — questions and agent personas from question_catalogue.yaml.

Seeding is an upsert keyed on (domain_name, question_id) for questions and on
name for agents, so it can be re-run after editing the YAML. Questions that
disappear from the YAML are deactivated, not deleted, because responses
still reference them.
"""
import logging
import os
from typing import Dict

import yaml
from sqlalchemy import select

from app.config import OPERATIONAL_DOMAINS, QUESTION_TYPES
from app.models.agent import Agent
from app.models.question import AssessmentQuestion
from app.engine.conditions import ConditionError, parse_condition, legacy_triggers, is_legacy

logger = logging.getLogger('engine.catalogue')

CATALOGUE_PATH = os.path.join(os.path.dirname(__file__), 'question_catalogue.yaml')


def load_catalogue(path: str = CATALOGUE_PATH) -> dict:
    """Parse and validate the catalogue file. Raises ValueError on bad content."""
    with open(path, 'r') as f:
        raw = yaml.safe_load(f) or {}

    questions = raw.get('questions') or {}
    unknown = [d for d in questions if d not in OPERATIONAL_DOMAINS]
    if unknown:
        raise ValueError(f"Catalogue has unknown domains: {unknown}")

    for domain, entries in questions.items():
        seen = set()
        for entry in entries:
            qid = str(entry['id'])
            if qid in seen:
                raise ValueError(f"Duplicate question id {domain}/{qid}")
            seen.add(qid)
            qtype = entry.get('type', 'core')
            if qtype not in QUESTION_TYPES:
                raise ValueError(f"{domain}/{qid}: unknown question type '{qtype}'")
            logic = entry.get('follow_up_logic')
            if logic:
                try:
                    if is_legacy(logic):
                        legacy_triggers(qid, logic)
                    else:
                        parse_condition(logic)
                except ConditionError as e:
                    raise ValueError(f"{domain}/{qid}: {e}") from e
    return raw


def seed_catalogue(session, catalogue: dict) -> Dict[str, int]:
    """Upsert agents and questions. Caller commits. Returns counts."""
    counts = {'agents_created': 0, 'agents_updated': 0,
              'questions_created': 0, 'questions_updated': 0, 'questions_deactivated': 0}

    agents = {a.name: a for a in session.scalars(select(Agent))}
    for entry in catalogue.get('agents') or []:
        agent = agents.get(entry['name'])
        if agent is None:
            agent = Agent(name=entry['name'])
            session.add(agent)
            agents[agent.name] = agent
            counts['agents_created'] += 1
        else:
            counts['agents_updated'] += 1
        agent.specialty = entry['specialty']
        agent.background = entry.get('background')
        agent.expertise = entry.get('expertise')
        agent.experience = entry.get('experience')
        agent.profile_image_url = entry.get('profile_image_url')
        agent.is_active = entry.get('is_active', True)

    default_options = catalogue.get('default_options') or []
    existing = {(q.domain_name, q.question_id): q for q in session.scalars(select(AssessmentQuestion))}
    seeded = set()
    for domain, entries in (catalogue.get('questions') or {}).items():
        for position, entry in enumerate(entries, start=1):
            key = (domain, str(entry['id']))
            seeded.add(key)
            question = existing.get(key)
            if question is None:
                question = AssessmentQuestion(domain_name=domain, question_id=key[1])
                session.add(question)
                counts['questions_created'] += 1
            else:
                counts['questions_updated'] += 1
            question.question_text = entry['text']
            question.question_type = entry.get('type', 'core')
            question.industry = entry.get('industry')
            question.order_index = position
            question.options = entry.get('options') or default_options
            question.follow_up_logic = entry.get('follow_up_logic')
            question.is_active = True

    for key, question in existing.items():
        if key not in seeded and question.is_active:
            question.is_active = False
            counts['questions_deactivated'] += 1

    session.flush()
    logger.info("Catalogue seeded: %s", counts)
    return counts
