"""Tests for app.engine.settings — EngineConfig and the YAML loader."""
import pytest
from unittest.mock import patch

from app.config import OPERATIONAL_DOMAINS
from app.engine import settings
from app.engine.settings import EngineConfig, config_from_dict, load_engine_config, reset_cache


@pytest.fixture(autouse=True)
def _fresh_cache():
    reset_cache()
    yield
    reset_cache()


class TestEngineConfigDefaults:

    def test_defaults(self):
        cfg = EngineConfig()
        assert cfg.sla_hours == {'executive_summary': 24, 'detailed_analysis': 48, 'implementation_kit': 72}
        assert cfg.retry_budget == 3
        assert cfg.final_deadline_hours == 72
        assert cfg.domains == tuple(OPERATIONAL_DOMAINS)
        assert set(cfg.quorum_domains) == {'Strategic Alignment', 'Financial Management', 'Revenue Engine'}

    @pytest.mark.parametrize('score,tier', [
        (10, 'excellent'), (8, 'excellent'), (7.9, 'good'), (6, 'good'),
        (5, 'warning'), (4, 'warning'), (3.9, 'critical'), (1, 'critical'),
    ])
    def test_health_for(self, score, tier):
        assert EngineConfig().health_for(score) == tier

    def test_frozen(self):
        with pytest.raises(Exception):
            EngineConfig().retry_budget = 5


class TestConfigFromDict:

    def test_partial_override(self):
        cfg = config_from_dict({'retry_budget': 5, 'sla_hours': {'executive_summary': 12}, 'version': 'x'})
        assert cfg.retry_budget == 5
        assert cfg.sla_hours['executive_summary'] == 12
        assert cfg.sla_hours['implementation_kit'] == 72
        assert cfg.version == 'x'

    def test_thresholds_sorted_best_first(self):
        cfg = config_from_dict({'health_thresholds': {'warning': 3, 'excellent': 9, 'good': 6}})
        assert [t for t, _ in cfg.health_thresholds] == ['excellent', 'good', 'warning']
        assert cfg.health_for(8.5) == 'good'

    def test_decreasing_sla_rejected(self):
        with pytest.raises(ValueError):
            config_from_dict({'sla_hours': {'detailed_analysis': 10}})

    def test_unknown_quorum_domain_rejected(self):
        with pytest.raises(ValueError):
            config_from_dict({'quorum_domains': ['Strategic Alignment', 'Marketing Magic']})

    def test_zero_retry_budget_rejected(self):
        with pytest.raises(ValueError):
            config_from_dict({'retry_budget': 0})


class TestLoadEngineConfig:

    def test_loads_bundled_yaml(self):
        cfg = load_engine_config()
        assert cfg.version == '2026-10-a'
        assert cfg.processing_timeout_minutes == 10
        assert cfg.min_domains_for_degraded == 1

    def test_cached(self):
        assert load_engine_config() is load_engine_config()

    def test_falls_back_when_yaml_missing(self):
        with patch('app.engine.settings.open', side_effect=FileNotFoundError, create=True):
            cfg = load_engine_config()
        assert cfg == EngineConfig()

    def test_falls_back_when_yaml_invalid(self):
        with patch.object(settings, 'config_from_dict', side_effect=ValueError('bad')):
            cfg = load_engine_config()
        assert cfg.version == 'default'
