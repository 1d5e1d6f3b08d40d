"""
Centralized configuration — env vars, domain catalogue, status vocabularies.

Engine policy (SLA windows, retry budget, quorum) is NOT read from here;
see app/engine/settings.py.
"""
import os


# ── Logging ──────────────────────────────────────────────────────────────────
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
LOG_FORMAT = os.getenv('LOG_FORMAT', 'text')

# ── Redis (RQ queue + circuit breaker state) ─────────────────────────────────
REDIS_URL = os.getenv('REDIS_URL', 'redis://localhost:6379/0')
ANALYSIS_QUEUE = os.getenv('ANALYSIS_QUEUE', 'analysis')

# ── PostgreSQL ────────────────────────────────────────────────────────────────
DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///local.db')

# ── OpenAI ────────────────────────────────────────────────────────────────────
OPENAI_API_KEY = os.getenv('OPENAI_API_KEY')
OPENAI_MODEL = os.getenv('OPENAI_MODEL', 'gpt-4o')

# Swap the OpenAI agent for canned responses (local dev / demos)
MOCK_ANALYSIS = os.getenv('MOCK_ANALYSIS')

# ── Cloudflare R2 (deliverable artifacts) ────────────────────────────────────
R2_ACCESS_KEY_ID = os.getenv('R2_ACCESS_KEY_ID')
R2_SECRET_ACCESS_KEY = os.getenv('R2_SECRET_ACCESS_KEY')
R2_BUCKET_NAME = os.getenv('R2_BUCKET_NAME')
R2_ENDPOINT_URL = os.getenv('R2_ENDPOINT_URL')

# Local fallback when R2 is not configured
ARTIFACT_DIR = os.getenv('ARTIFACT_DIR', 'artifacts')

# ── Slack notifications ──────────────────────────────────────────────────────
SLACK_WEBHOOK_URL = os.getenv('SLACK_WEBHOOK_URL')

# ── Payment webhook ──────────────────────────────────────────────────────────
PAYMENT_WEBHOOK_SECRET = os.getenv('PAYMENT_WEBHOOK_SECRET')

# ── Pricing ──────────────────────────────────────────────────────────────────
ASSESSMENT_PRICE = 7500.00
DEFAULT_CURRENCY = 'GBP'

# ── Questionnaire ────────────────────────────────────────────────────────────
DEFAULT_TOTAL_QUESTIONS = 120

# ── The 12 operational domains (order is display + dispatch order) ──────────
OPERATIONAL_DOMAINS = [
    'Strategic Alignment',
    'Financial Management',
    'Revenue Engine',
    'Operations Excellence',
    'People & Organization',
    'Technology & Data',
    'Customer Success',
    'Product Strategy',
    'Market Position',
    'Risk Management',
    'Innovation Pipeline',
    'Governance & Compliance',
]

# ── Domain → agent specialty routing ─────────────────────────────────────────
DOMAIN_TO_SPECIALTY = {
    'Strategic Alignment':     'Strategic Transformation',
    'Financial Management':    'Financial Operations',
    'Revenue Engine':          'Revenue Operations',
    'Operations Excellence':   'Operations Excellence',
    'People & Organization':   'People & Organization',
    'Technology & Data':       'Technology & Data',
    'Customer Success':        'Customer Success',
    'Product Strategy':        'Product Strategy',
    'Market Position':         'Market Position',
    'Risk Management':         'Risk Management',
    'Innovation Pipeline':     'Innovation Pipeline',
    'Governance & Compliance': 'Governance & Compliance',
}

# ── Assessment lifecycle status values ───────────────────────────────────────
ASSESSMENT_STATUSES = [
    'pending',
    'in_progress',
    'awaiting_payment',
    'paid',
    'analysis',
    'completed',
    'failed',
]

# Statuses in which the respondent may still change answers
OPEN_STATUSES = ('pending', 'in_progress', 'awaiting_payment')

# ── Analysis job status values ───────────────────────────────────────────────
JOB_STATUSES = [
    'queued',
    'processing',
    'completed',
    'failed',
    'cancelled',
]

OUTSTANDING_JOB_STATUSES = ('queued', 'processing')

# ── Domain health tiers (worst → best) ───────────────────────────────────────
HEALTH_TIERS = ['critical', 'warning', 'good', 'excellent']

# ── Question types ───────────────────────────────────────────────────────────
QUESTION_TYPES = ['core', 'industry_specific', 'follow_up']

# ── Deliverable tiers, in SLA order ──────────────────────────────────────────
DELIVERABLE_TIERS = [
    'executive_summary',
    'detailed_analysis',
    'implementation_kit',
]
