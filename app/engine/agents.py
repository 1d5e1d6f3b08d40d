"""
Analysis-agent capability.

The engine calls `invoke(agent, domain_name, context)` and gets back the raw
response text plus token usage; it never looks inside the agent's reasoning.
The OpenAI adapter is the production capability; MOCK_ANALYSIS=1 swaps in a
deterministic fake that needs no API key.
"""
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List

from sqlalchemy import select

from app.models.agent import Agent
from app.models.assessment import Assessment
from app.models.document import Document
from app.models.question import AssessmentQuestion
from app.models.response import AssessmentResponse
from app.models.user import User

logger = logging.getLogger('engine.agents')


@dataclass
class AgentResult:
    response_text: str
    tokens_used: int = 0
    prompt: str = ''


class AgentCapability(ABC):
    """One call = one domain analysis. Must be safe to call again on retry."""
    name: str = ''

    @abstractmethod
    def invoke(self, agent: Dict[str, Any], domain_name: str, context: Dict[str, Any]) -> AgentResult:
        ...


# ── Context + prompt ──────────────────────────────────────────────────────────

def build_context(session, assessment_id: str, domain_name: str) -> Dict[str, Any]:
    """Read-only snapshot of everything an agent sees for one domain."""
    assessment = session.get(Assessment, assessment_id)
    user = session.get(User, assessment.user_id) if assessment else None

    texts = {
        q.question_id: q.question_text
        for q in session.scalars(
            select(AssessmentQuestion).where(AssessmentQuestion.domain_name == domain_name)
        )
    }
    responses = [
        {
            'question_id': r.question_id,
            'question': texts.get(r.question_id, ''),
            'score': r.score,
            'response': r.response,
        }
        for r in session.scalars(
            select(AssessmentResponse)
            .where(AssessmentResponse.assessment_id == assessment_id)
            .where(AssessmentResponse.domain_name == domain_name)
            .order_by(AssessmentResponse.question_id)
        )
        if r.is_answered
    ]
    documents = [
        d.to_dict() for d in session.scalars(
            select(Document).where(Document.assessment_id == assessment_id).order_by(Document.uploaded_at)
        )
    ]
    return {
        'company': {
            'company_name': (user.company_name if user else None) or 'the company',
            'industry': (user.industry if user else None) or 'unspecified',
            'revenue': (user.revenue if user else None) or 'undisclosed',
            'team_size': user.team_size if user else None,
        },
        'responses': responses,
        'documents': documents,
    }


def build_prompt(agent: Dict[str, Any], domain_name: str, context: Dict[str, Any]) -> str:
    company = context['company']
    team = company['team_size'] if company['team_size'] is not None else 'an unknown number of'
    docs = '\n'.join(f"- {d['file_name']} ({d.get('file_type') or 'unknown type'})"
                     for d in context['documents']) or '- none uploaded'
    return f"""You are {agent.get('name', 'a specialist consultant')}, {agent.get('background') or 'an operations specialist'}.
Your expertise: {agent.get('expertise') or agent.get('specialty', '')}.

Analyze the {domain_name} domain for {company['company_name']}, a {company['industry']} company with {company['revenue']} revenue and {team} employees.

Assessment responses (scores run 1 = strongest to 5 = weakest):
{json.dumps(context['responses'], indent=2)}

Uploaded documents:
{docs}

Respond in JSON:
{{
  "score": <number 1-10, 10 = competitive advantage>,
  "summary": "<200-word executive summary>",
  "recommendations": ["<actionable recommendation>", "..."],
  "keyInsights": ["<key insight>", "..."],
  "quickWins": ["<quick win>", "..."],
  "riskFactors": ["<risk factor>", "..."]
}}

Score guide: 1-3 critical, 4-5 warning, 6-7 good, 8-10 excellent.
Focus on actionable, specific insights based on your expertise in {agent.get('specialty', domain_name)}."""


# ── OpenAI ────────────────────────────────────────────────────────────────────

class OpenAIAgentCapability(AgentCapability):
    name = 'openai'

    def invoke(self, agent, domain_name, context) -> AgentResult:
        from app.services.openai_client import analyze_domain
        prompt = build_prompt(agent, domain_name, context)
        text, tokens = analyze_domain(prompt)
        return AgentResult(response_text=text, tokens_used=tokens, prompt=prompt)


# ── Mock ──────────────────────────────────────────────────────────────────────

class MockAgentCapability(AgentCapability):
    """Deterministic canned analysis derived from the respondent's scores."""
    name = 'mock'

    def invoke(self, agent, domain_name, context) -> AgentResult:
        prompt = build_prompt(agent, domain_name, context)
        scores: List[int] = [r['score'] for r in context['responses'] if r.get('score') is not None]
        # Answer scale is 1 (best) .. 5 (worst); map onto 9 .. 1
        avg = sum(scores) / len(scores) if scores else 3
        score = round(max(1.0, min(10.0, 11 - 2 * avg)), 1)
        company = context['company']['company_name']
        payload = {
            'score': score,
            'summary': f"{domain_name} at {company} scores {score}/10 based on "
                       f"{len(scores)} answered questions.",
            'recommendations': [
                f"Assign a single owner for {domain_name} outcomes",
                f"Set quarterly targets for the weakest {domain_name} practices",
                "Review progress monthly with the leadership team",
            ],
            'keyInsights': [f"{len(scores)} responses analysed", f"Average answer {avg:.1f} on a 1-5 scale"],
            'quickWins': [f"Document the current {domain_name} process"],
            'riskFactors': ["Limited data"] if len(scores) < 3 else [],
        }
        text = json.dumps(payload)
        return AgentResult(response_text=text, tokens_used=len(prompt) // 4, prompt=prompt)


CAPABILITIES = {
    'openai': OpenAIAgentCapability,
    'mock': MockAgentCapability,
}


def get_agent_capability(name: str = None) -> AgentCapability:
    """Instantiate the configured capability (MOCK_ANALYSIS selects the fake)."""
    if name is None:
        from app.config import MOCK_ANALYSIS
        name = 'mock' if MOCK_ANALYSIS else 'openai'
    cls = CAPABILITIES.get(name)
    if not cls:
        raise ValueError(f"No agent capability registered as '{name}'")
    if name == 'mock':
        logger.info("MOCK_ANALYSIS active — using fake agent capability")
    return cls()


def agent_descriptor(session, agent_id: str) -> Dict[str, Any]:
    agent = session.get(Agent, agent_id)
    if agent is None:
        return {'id': agent_id, 'name': 'Specialist', 'specialty': ''}
    return agent.to_dict()
