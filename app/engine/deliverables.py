"""
Deliverable content builders. Pure Python, no API calls.

Each builder takes the company context and the list of completed domain
result dicts (AssessmentDomain.result_dict()) and returns a JSON-ready dict.
The aggregator decides WHEN a tier is built; this module only decides WHAT
goes in it.
"""
from typing import Any, Dict, List

from app.config import OPERATIONAL_DOMAINS

HEALTH_RANK = {'critical': 0, 'warning': 1, 'good': 2, 'excellent': 3}

# Generic leading indicators per domain for the implementation kit
DOMAIN_METRICS = {
    'Strategic Alignment':     ['Share of initiatives mapped to strategic goals', 'Leadership vision alignment score'],
    'Financial Management':    ['Cash runway (months)', 'Forecast accuracy vs actuals'],
    'Revenue Engine':          ['Pipeline coverage ratio', 'Win rate', 'Sales cycle length'],
    'Operations Excellence':   ['Process cycle time', 'Share of automated workflows'],
    'People & Organization':   ['Regretted attrition', 'Time to hire'],
    'Technology & Data':       ['Deployment frequency', 'Data quality incidents per month'],
    'Customer Success':        ['Net revenue retention', 'Churn rate'],
    'Product Strategy':        ['Feature adoption rate', 'Roadmap delivery predictability'],
    'Market Position':         ['Share of voice', 'Competitive win/loss ratio'],
    'Risk Management':         ['Open high-severity risks', 'Time to mitigate'],
    'Innovation Pipeline':     ['Experiments run per quarter', 'Revenue from new offerings'],
    'Governance & Compliance': ['Audit findings outstanding', 'Policy attestation rate'],
}


def _ordered(domains: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    index = {name: i for i, name in enumerate(OPERATIONAL_DOMAINS)}
    return sorted(domains, key=lambda d: index.get(d['domain_name'], len(index)))


def _by_priority(domains):
    """Worst first: lowest health tier, then lowest score."""
    return sorted(domains, key=lambda d: (HEALTH_RANK.get(d.get('health'), 1), d.get('score') or 0))


def overall_health(avg_score: float, config) -> str:
    return config.health_for(avg_score)


def _header(tier, context, domains, degraded):
    included = [d['domain_name'] for d in _ordered(domains)]
    return {
        'tier': tier,
        'company': {
            'name': context.get('company_name') or '',
            'industry': context.get('industry') or '',
            'revenue': context.get('revenue') or '',
            'team_size': context.get('team_size'),
        },
        'domains_included': included,
        'domains_missing': [d for d in OPERATIONAL_DOMAINS if d not in included],
        'degraded': degraded,
    }


# ── 24h: Executive summary ────────────────────────────────────────────────────

def build_executive_summary(context: dict, domains: List[dict], config, degraded: bool = False) -> dict:
    scores = [d['score'] for d in domains if d.get('score') is not None]
    avg = round(sum(scores) / len(scores), 1) if scores else 0.0
    health = overall_health(avg, config) if scores else 'critical'

    ranked = _by_priority(domains)
    bottlenecks = [
        {'domain': d['domain_name'], 'score': d['score'], 'health': d['health'], 'summary': d['summary']}
        for d in ranked if d.get('health') in ('critical', 'warning')
    ][:3]
    strengths = [d['domain_name'] for d in reversed(ranked) if d.get('health') in ('good', 'excellent')][:3]

    quick_wins = []
    for d in ranked:
        for win in d.get('quick_wins') or []:
            if win not in quick_wins:
                quick_wins.append(win)
    quick_wins = quick_wins[:5]

    doc = _header('executive_summary', context, domains, degraded)
    doc.update({
        'overall_health': health,
        'average_score': avg,
        'critical_bottlenecks': bottlenecks,
        'strengths': strengths,
        'quick_wins': quick_wins,
        'narrative': _narrative(context, domains, avg, health, bottlenecks, strengths),
    })
    return doc


def _narrative(context, domains, avg, health, bottlenecks, strengths):
    company = context.get('company_name') or 'The company'
    lines = [f"{company} scored {avg}/10 on average across {len(domains)} of "
             f"{len(OPERATIONAL_DOMAINS)} operational domains, an overall '{health}' rating."]
    if bottlenecks:
        names = ', '.join(b['domain'] for b in bottlenecks)
        lines.append(f"The most pressing growth bottlenecks are in {names}.")
    else:
        lines.append("No domain is rated critical or warning.")
    if strengths:
        lines.append(f"Relative strengths to build on: {', '.join(strengths)}.")
    missing = len(OPERATIONAL_DOMAINS) - len(domains)
    if missing:
        lines.append(f"{missing} domain(s) are still being analysed and will be added as they complete.")
    return ' '.join(lines)


# ── 48h: Detailed analysis ────────────────────────────────────────────────────

def build_detailed_analysis(context: dict, domains: List[dict], config, degraded: bool = False,
                            agents: Dict[str, dict] = None) -> dict:
    agents = agents or {}
    analyses = []
    for d in _ordered(domains):
        agent = agents.get(d.get('agent_id')) or {}
        analyses.append({
            'domain': d['domain_name'],
            'score': d['score'],
            'health': d['health'],
            'summary': d['summary'],
            'recommendations': d.get('recommendations') or [],
            'key_insights': d.get('key_insights') or [],
            'risk_factors': d.get('risk_factors') or [],
            'analyst': {'name': agent.get('name', ''), 'specialty': agent.get('specialty', '')},
        })

    risks = []
    for d in _by_priority(domains):
        for risk in d.get('risk_factors') or []:
            risks.append({'domain': d['domain_name'], 'risk': risk})

    doc = _header('detailed_analysis', context, domains, degraded)
    doc.update({
        'domain_analyses': analyses,
        'priority_ranking': [d['domain_name'] for d in _by_priority(domains)],
        'cross_domain_risks': risks,
    })
    return doc


# ── 72h: Implementation kit ───────────────────────────────────────────────────

def _priority_label(health):
    return {'critical': 'P1', 'warning': 'P2', 'good': 'P3'}.get(health, 'P4')


def build_implementation_kit(context: dict, domains: List[dict], config, degraded: bool = False) -> dict:
    ranked = _by_priority(domains)

    # Phase 1 (0-30d): first recommendation of every P1/P2 domain
    # Phase 2 (30-90d): remaining P1/P2 recommendations
    # Phase 3 (90-180d): everything for P3/P4 domains
    phases = {'phase_1_0_30_days': [], 'phase_2_30_90_days': [], 'phase_3_90_180_days': []}
    for d in ranked:
        recs = d.get('recommendations') or []
        if d.get('health') in ('critical', 'warning'):
            for i, rec in enumerate(recs):
                key = 'phase_1_0_30_days' if i == 0 else 'phase_2_30_90_days'
                phases[key].append({'domain': d['domain_name'], 'action': rec})
        else:
            for rec in recs:
                phases['phase_3_90_180_days'].append({'domain': d['domain_name'], 'action': rec})

    doc = _header('implementation_kit', context, domains, degraded)
    doc.update({
        'domain_priorities': [
            {'domain': d['domain_name'], 'priority': _priority_label(d.get('health')), 'score': d['score']}
            for d in ranked
        ],
        'roadmap': phases,
        'quick_wins': [
            {'domain': d['domain_name'], 'action': w} for d in ranked for w in (d.get('quick_wins') or [])
        ],
        'metrics_to_track': {d['domain_name']: DOMAIN_METRICS.get(d['domain_name'], []) for d in ranked},
    })
    return doc


BUILDERS = {
    'executive_summary': build_executive_summary,
    'detailed_analysis': build_detailed_analysis,
    'implementation_kit': build_implementation_kit,
}
