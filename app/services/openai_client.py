"""
OpenAI API helpers — domain analysis via chat completions.
"""
import logging
from typing import Tuple

from app.config import OPENAI_MODEL
from app.extensions import openai_client as client

logger = logging.getLogger('services.openai')

SYSTEM_PROMPT = (
    "You are an expert business consultant specializing in growth bottleneck analysis. "
    "Provide detailed, actionable insights in JSON format."
)


def _chat_completion(**kwargs):
    """Route chat completion through the OpenAI circuit breaker."""
    from app.services.circuit_breaker import get_breaker
    if client is None:
        raise RuntimeError("OPENAI_API_KEY not set — cannot run analysis")
    cb = get_breaker('openai')
    return cb.call(client.chat.completions.create, **kwargs)


def analyze_domain(prompt: str) -> Tuple[str, int]:
    """
    Run one domain analysis prompt. Returns (raw JSON text, total tokens).

    Parsing and validation are the scheduler's job so that a malformed
    reply counts as a failed attempt under the retry budget.
    """
    response = _chat_completion(
        model=OPENAI_MODEL,
        messages=[
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ],
        response_format={"type": "json_object"},
    )
    text = response.choices[0].message.content or ''
    usage = getattr(response, 'usage', None)
    tokens = int(getattr(usage, 'total_tokens', 0) or 0) if usage is not None else 0
    logger.info("Domain analysis returned %d chars (%d tokens)", len(text), tokens)
    return text, tokens
