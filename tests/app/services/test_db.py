"""Tests for app.services.db -- read-side query helpers."""
from app.models.assessment import Assessment
from app.services.db import (
    company_context,
    deliverables_by_assessment,
    domains_by_assessment,
    jobs_by_assessment,
)


class TestJobsByAssessment:
    """jobs_by_assessment() returns history in creation order."""

    def test_all_jobs(self, paid_assessment, db_session):
        jobs = jobs_by_assessment(db_session, paid_assessment)
        assert len(jobs) == 12
        assert all(j.assessment_id == paid_assessment for j in jobs)

    def test_status_filter(self, engine, paid_assessment, db_session):
        job = jobs_by_assessment(db_session, paid_assessment)[0]
        engine.scheduler.start(job.id)
        processing = jobs_by_assessment(db_session, paid_assessment, statuses=['processing'])
        assert [j.id for j in processing] == [job.id]

    def test_retry_follows_original(self, engine, paid_assessment, db_session):
        job = jobs_by_assessment(db_session, paid_assessment)[0]
        engine.scheduler.start(job.id)
        engine.scheduler.fail(job.id, 'boom')
        history = [j for j in jobs_by_assessment(db_session, paid_assessment) if j.domain_name == job.domain_name]
        assert [j.attempt for j in history] == [1, 2]

    def test_other_assessments_excluded(self, paid_assessment, assessment_id, db_session):
        assert jobs_by_assessment(db_session, 'someone-else') == []


class TestDomainsAndDeliverables:

    def test_domains_created_on_dispatch(self, paid_assessment, db_session):
        domains = domains_by_assessment(db_session, paid_assessment)
        assert len(domains) == 12
        assert not any(d.analysis_complete for d in domains)

    def test_deliverables_after_drain(self, paid_assessment, drain, db_session):
        drain(paid_assessment)
        tiers = {d.tier for d in deliverables_by_assessment(db_session, paid_assessment)}
        assert tiers == {'executive_summary', 'detailed_analysis', 'implementation_kit'}

    def test_no_deliverables_yet(self, paid_assessment, db_session):
        assert deliverables_by_assessment(db_session, paid_assessment) == []


class TestCompanyContext:

    def test_from_owning_user(self, engine, make_user, db_session):
        user_id = make_user(company_name='Globex', industry='manufacturing', team_size=250)
        created = engine.lifecycle.create_assessment(user_id)
        assessment = db_session.get(Assessment, created.id)
        assert company_context(db_session, assessment) == {
            'company_name': 'Globex', 'industry': 'manufacturing', 'revenue': '1M-10M', 'team_size': 250,
        }

    def test_missing_user(self, db_session):
        assert company_context(db_session, Assessment(user_id='ghost')) == {}
