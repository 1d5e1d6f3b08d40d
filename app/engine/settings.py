"""
Engine config loader — SLA windows, retry budget, quorum, health thresholds.

Same pattern as the other YAML-backed configs: YAML file with in-memory
cache and hardcoded fallback if the file is missing or malformed. The
loaded EngineConfig is handed to the scheduler, aggregator and lifecycle
controller at construction time; they never read it from globals.
"""
import logging
import os
from dataclasses import dataclass, field
from typing import Dict, Tuple

import yaml

from app.config import OPERATIONAL_DOMAINS

logger = logging.getLogger('engine.settings')


@dataclass(frozen=True)
class EngineConfig:
    sla_hours: Dict[str, float] = field(default_factory=lambda: {
        'executive_summary': 24,
        'detailed_analysis': 48,
        'implementation_kit': 72,
    })
    retry_budget: int = 3
    processing_timeout_minutes: int = 10
    quorum_domains: Tuple[str, ...] = ('Strategic Alignment', 'Financial Management', 'Revenue Engine')
    health_thresholds: Tuple[Tuple[str, float], ...] = (('excellent', 8), ('good', 6), ('warning', 4))
    min_domains_for_degraded: int = 1
    domains: Tuple[str, ...] = tuple(OPERATIONAL_DOMAINS)
    version: str = 'default'

    @property
    def final_deadline_hours(self) -> float:
        return self.sla_hours['implementation_kit']

    def health_for(self, score) -> str:
        """Map a 1-10 score to a health tier."""
        for tier, lower in self.health_thresholds:
            if score >= lower:
                return tier
        return 'critical'


_engine_config = None


def _default_config():
    """Hardcoded fallback if YAML is missing."""
    return EngineConfig()


def config_from_dict(raw: dict) -> EngineConfig:
    """Build an EngineConfig from a parsed YAML mapping, validating as we go."""
    base = EngineConfig()
    sla = dict(base.sla_hours)
    sla.update({k: float(v) for k, v in (raw.get('sla_hours') or {}).items()})
    if not sla['executive_summary'] <= sla['detailed_analysis'] <= sla['implementation_kit']:
        raise ValueError(f"SLA windows must be non-decreasing: {sla}")

    quorum = tuple(raw.get('quorum_domains') or base.quorum_domains)
    unknown = [d for d in quorum if d not in OPERATIONAL_DOMAINS]
    if unknown:
        raise ValueError(f"Unknown quorum domains: {unknown}")

    thresholds = raw.get('health_thresholds') or dict(base.health_thresholds)
    ordered = tuple(sorted(((k, float(v)) for k, v in thresholds.items()), key=lambda t: -t[1]))

    budget = int(raw.get('retry_budget', base.retry_budget))
    if budget < 1:
        raise ValueError("retry_budget must be at least 1")

    return EngineConfig(
        sla_hours=sla,
        retry_budget=budget,
        processing_timeout_minutes=int(raw.get('processing_timeout_minutes', base.processing_timeout_minutes)),
        quorum_domains=quorum,
        health_thresholds=ordered,
        min_domains_for_degraded=int(raw.get('min_domains_for_degraded', base.min_domains_for_degraded)),
        version=str(raw.get('version', 'unversioned')),
    )


def load_engine_config() -> EngineConfig:
    """Load engine config from YAML, with in-memory cache and hardcoded fallback."""
    global _engine_config
    if _engine_config is not None:
        return _engine_config

    config_path = os.path.join(os.path.dirname(__file__), 'engine_config.yaml')
    try:
        with open(config_path, 'r') as f:
            _engine_config = config_from_dict(yaml.safe_load(f) or {})
        logger.info("Engine config loaded from YAML (version=%s)", _engine_config.version)
    except Exception as e:
        logger.warning("Engine config not usable (%s), using defaults", e)
        _engine_config = _default_config()

    return _engine_config


def reset_cache():
    """Reset the in-memory cache (useful for testing)."""
    global _engine_config
    _engine_config = None
