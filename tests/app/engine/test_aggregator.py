"""Tests for app.engine.aggregator: tier triggers, degraded builds, upgrades."""
import json
import logging
import os

import pytest
from unittest.mock import MagicMock

from app.config import DELIVERABLE_TIERS
from app.engine.agents import AgentCapability, AgentResult
from app.engine.aggregator import content_hash, artifact_key
from app.engine.errors import AssessmentNotFoundError
from app.models.deliverable import Deliverable
from app.services.artifacts import LocalArtifactStore

QUORUM = ('Strategic Alignment', 'Financial Management', 'Revenue Engine')


class FixedScoreCapability(AgentCapability):
    """Agent that always answers with the same score."""
    name = 'fixed'

    def __init__(self, score):
        self.score = score

    def invoke(self, agent, domain_name, context):
        text = json.dumps({'score': self.score, 'summary': f'{domain_name} re-run'})
        return AgentResult(response_text=text, tokens_used=10, prompt='p')


def _deliverables(session_factory, assessment_id):
    with session_factory() as session:
        rows = session.query(Deliverable).filter_by(assessment_id=assessment_id).all()
    return {d.tier: d for d in rows}


def _read(path):
    with open(path) as f:
        return json.load(f)


class TestContentAddressing:

    def test_hash_ignores_input_order(self):
        a = {'domain_name': 'Market Position', 'score': 7.0}
        b = {'domain_name': 'Risk Management', 'score': 4.0}
        assert content_hash([a, b]) == content_hash([b, a])

    def test_hash_changes_with_result(self):
        a = {'domain_name': 'Market Position', 'score': 7.0}
        assert content_hash([a]) != content_hash([dict(a, score=6.0)])

    def test_artifact_key(self):
        digest = 'ab' * 32
        assert artifact_key('a1', 'executive_summary', digest) == \
            'assessments/a1/executive_summary-abababababababab.json'


class TestReconcileGuards:

    def test_unknown_assessment(self, engine):
        with pytest.raises(AssessmentNotFoundError):
            engine.aggregator.reconcile('missing')

    def test_skipped_before_analysis(self, engine, assessment_id):
        result = engine.aggregator.reconcile(assessment_id)
        assert result.skipped
        assert result.outcomes == {}

    def test_nothing_complete_is_waiting(self, engine, paid_assessment):
        result = engine.aggregator.reconcile(paid_assessment)
        assert {o.action for o in result.outcomes.values()} == {'waiting'}
        assert result.settled is False
        assert result.quorum_met is False


class TestCompletenessTriggers:
    """Tiers reached by completeness wait until nothing is in flight."""

    def test_quorum_alone_does_not_assemble_while_jobs_outstanding(self, engine, paid_assessment, run_domain):
        for domain in QUORUM:
            run_domain(paid_assessment, domain)
        result = engine.aggregator.reconcile(paid_assessment)
        assert result.quorum_met
        assert result.outcomes['executive_summary'].action == 'waiting'

    def test_all_tiers_assembled_when_every_domain_completes(self, engine, paid_assessment, drain,
                                                             session_factory, load_assessment):
        drain(paid_assessment)
        rows = _deliverables(session_factory, paid_assessment)
        assert set(rows) == set(DELIVERABLE_TIERS)
        for tier, row in rows.items():
            assert row.version == 1
            assert row.degraded is False
            assert len(row.domains_included) == 12
            assert row.path.endswith(f'{tier}-{row.content_hash[:16]}.json')
            assert os.path.exists(row.path)

        assessment = load_assessment(paid_assessment)
        assert assessment.executive_summary_path == rows['executive_summary'].path
        assert assessment.implementation_kit_path == rows['implementation_kit'].path

    def test_artifact_content(self, engine, paid_assessment, drain, session_factory):
        drain(paid_assessment)
        doc = _read(_deliverables(session_factory, paid_assessment)['executive_summary'].path)
        assert doc['tier'] == 'executive_summary'
        assert doc['company']['name'] == 'Acme Widgets'
        assert doc['domains_missing'] == []
        assert doc['degraded'] is False
        assert doc['version'] == 1
        assert doc['average_score'] == 7.0
        assert doc['overall_health'] == 'good'

    def test_reconcile_again_is_unchanged(self, engine, paid_assessment, drain, session_factory, artifact_dir):
        drain(paid_assessment)
        before = {t: d.path for t, d in _deliverables(session_factory, paid_assessment).items()}
        files_before = sorted(p for p in artifact_dir.rglob('*.json'))

        result = engine.aggregator.reconcile(paid_assessment)
        assert {o.action for o in result.outcomes.values()} == {'unchanged'}
        assert {t: o.path for t, o in result.outcomes.items()} == before
        assert sorted(p for p in artifact_dir.rglob('*.json')) == files_before


class TestDeadlineTriggers:
    """Tiers reached by their deadline are built immediately from what is complete."""

    def test_degraded_executive_summary_at_24h(self, engine, paid_assessment, run_domain, clock, session_factory):
        run_domain(paid_assessment, 'Market Position')
        run_domain(paid_assessment, 'Risk Management')
        clock.advance(hours=24)

        result = engine.aggregator.reconcile(paid_assessment)
        summary = result.outcomes['executive_summary']
        assert (summary.action, summary.degraded, summary.domains) == ('assembled', True, 2)
        assert result.outcomes['detailed_analysis'].action == 'waiting'
        assert result.outcomes['implementation_kit'].action == 'waiting'

        doc = _read(summary.path)
        assert doc['degraded'] is True
        assert doc['domains_included'] == ['Market Position', 'Risk Management']
        assert len(doc['domains_missing']) == 10

    def test_insufficient_without_any_complete_domain(self, engine, paid_assessment, clock):
        clock.advance(hours=24)
        result = engine.aggregator.reconcile(paid_assessment)
        assert result.outcomes['executive_summary'].action == 'insufficient'
        assert result.outcomes['executive_summary'].path is None

    def test_kit_needs_quorum_even_at_72h(self, engine, paid_assessment, run_domain, clock, load_assessment):
        run_domain(paid_assessment, 'Market Position')
        clock.advance(hours=72)
        result = engine.aggregator.reconcile(paid_assessment)
        assert result.outcomes['executive_summary'].action == 'assembled'
        assert result.outcomes['detailed_analysis'].action == 'assembled'
        assert result.outcomes['implementation_kit'].action == 'insufficient'
        assert load_assessment(paid_assessment).implementation_kit_path is None

    def test_degraded_tier_upgraded_when_more_domains_complete(self, engine, paid_assessment, run_domain,
                                                               drain, clock, session_factory):
        run_domain(paid_assessment, 'Market Position')
        clock.advance(hours=24)
        first = engine.aggregator.reconcile(paid_assessment).outcomes['executive_summary']
        assert first.degraded

        drain(paid_assessment)
        row = _deliverables(session_factory, paid_assessment)['executive_summary']
        assert row.version == 2
        assert row.degraded is False
        assert len(row.domains_included) == 12
        assert row.path != first.path
        # Earlier artifact stays where it was
        assert os.path.exists(first.path)

    def test_upgrade_waits_until_settled(self, engine, paid_assessment, run_domain, clock):
        run_domain(paid_assessment, 'Market Position')
        clock.advance(hours=24)
        engine.aggregator.reconcile(paid_assessment)

        run_domain(paid_assessment, 'Risk Management')
        result = engine.aggregator.reconcile(paid_assessment)
        assert result.outcomes['executive_summary'].action == 'unchanged'
        assert result.outcomes['executive_summary'].domains == 1


class TestReanalysis:

    def test_same_result_keeps_artifact(self, engine, paid_assessment, drain, session_factory):
        drain(paid_assessment)
        before = _deliverables(session_factory, paid_assessment)['detailed_analysis']
        engine.lifecycle.reanalyze(paid_assessment, 'Market Position')
        drain(paid_assessment)
        after = _deliverables(session_factory, paid_assessment)['detailed_analysis']
        assert (after.path, after.version) == (before.path, 1)

    def test_changed_result_upgrades_full_tiers(self, engine, paid_assessment, drain, session_factory):
        drain(paid_assessment)
        before = _deliverables(session_factory, paid_assessment)

        engine.lifecycle.reanalyze(paid_assessment, 'Market Position')
        engine.capability = FixedScoreCapability(3)
        drain(paid_assessment)

        after = _deliverables(session_factory, paid_assessment)
        for tier in DELIVERABLE_TIERS:
            assert after[tier].version == 2
            assert after[tier].path != before[tier].path
            assert after[tier].degraded is False
        doc = _read(after['detailed_analysis'].path)
        market = next(a for a in doc['domain_analyses'] if a['domain'] == 'Market Position')
        assert market['health'] == 'critical'

    def test_reopened_domain_does_not_downgrade(self, engine, paid_assessment, drain, session_factory):
        drain(paid_assessment)
        before = _deliverables(session_factory, paid_assessment)
        engine.lifecycle.reanalyze(paid_assessment, 'Market Position')
        result = engine.aggregator.reconcile(paid_assessment)
        assert {o.action for o in result.outcomes.values()} == {'unchanged'}
        assert _deliverables(session_factory, paid_assessment)['executive_summary'].path == \
            before['executive_summary'].path


    def test_failed_reanalysis_keeps_degraded_tier(self, engine, paid_assessment, drain, clock, capability,
                                                   session_factory):
        """A degraded tier keeps a reopened domain whose re-run never completes."""
        capability.failing.add('Innovation Pipeline')
        drain(paid_assessment)
        clock.advance(hours=49)
        engine.aggregator.reconcile(paid_assessment)
        before = _deliverables(session_factory, paid_assessment)['detailed_analysis']
        assert before.degraded is True
        assert len(before.domains_included) == 11

        engine.lifecycle.reanalyze(paid_assessment, 'Market Position')
        capability.failing.add('Market Position')
        drain(paid_assessment)
        result = engine.aggregator.reconcile(paid_assessment)

        assert result.outcomes['detailed_analysis'].action == 'unchanged'
        after = _deliverables(session_factory, paid_assessment)['detailed_analysis']
        assert (after.path, after.version) == (before.path, 1)
        assert 'Market Position' in after.domains_included

    def test_reanalysis_result_upgrades_degraded_tier(self, engine, paid_assessment, drain, clock, capability,
                                                      session_factory):
        capability.failing.add('Innovation Pipeline')
        drain(paid_assessment)
        clock.advance(hours=49)
        engine.aggregator.reconcile(paid_assessment)

        engine.lifecycle.reanalyze(paid_assessment, 'Market Position')
        engine.capability = FixedScoreCapability(3)
        drain(paid_assessment)

        after = _deliverables(session_factory, paid_assessment)['detailed_analysis']
        assert after.version == 2
        assert after.degraded is True
        assert len(after.domains_included) == 11
        doc = _read(after.path)
        market = next(a for a in doc['domain_analyses'] if a['domain'] == 'Market Position')
        assert market['health'] == 'critical'


class TestStoreAndNotify:

    def test_store_failure_retried_on_next_reconcile(self, engine, paid_assessment, drain, artifact_dir,
                                                     load_assessment, caplog):
        engine.aggregator.store = MagicMock(put_json=MagicMock(side_effect=OSError('disk full')))
        with caplog.at_level(logging.ERROR, logger='engine.aggregator'):
            drain(paid_assessment)
            result = engine.aggregator.reconcile(paid_assessment)
        assert {o.action for o in result.outcomes.values()} == {'error'}
        assert load_assessment(paid_assessment).executive_summary_path is None
        assert any('disk full' in r.getMessage() for r in caplog.records)

        engine.aggregator.store = LocalArtifactStore(str(artifact_dir))
        result = engine.aggregator.reconcile(paid_assessment)
        assert sorted(result.assembled) == sorted(DELIVERABLE_TIERS)
        assert load_assessment(paid_assessment).executive_summary_path is not None

    def test_notify_called_per_delivered_tier(self, engine, paid_assessment, drain):
        engine.aggregator.notify = MagicMock()
        drain(paid_assessment)
        tiers = [c.args[1].tier for c in engine.aggregator.notify.call_args_list]
        assert sorted(tiers) == sorted(DELIVERABLE_TIERS)
        assert all(c.args[0] == paid_assessment for c in engine.aggregator.notify.call_args_list)

    def test_notify_failure_does_not_block_delivery(self, engine, paid_assessment, drain, load_assessment):
        engine.aggregator.notify = MagicMock(side_effect=RuntimeError('slack down'))
        drain(paid_assessment)
        assessment = load_assessment(paid_assessment)
        assert assessment.status == 'completed'
        assert assessment.detailed_analysis_path is not None
