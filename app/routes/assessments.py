"""
Assessment routes — questionnaire submission and the read-only status surface.

Engine errors (not found / locked / duplicate job) are turned into JSON
responses by the handlers registered in create_app().
"""
import logging
from flask import Blueprint, request, jsonify

from app.config import OPERATIONAL_DOMAINS
from app.engine.runtime import get_engine
from app.models.assessment import Assessment
from app.models.user import User

logger = logging.getLogger('routes.assessments')

bp = Blueprint('assessments', __name__)

USER_FIELDS = ('email', 'first_name', 'last_name', 'company_name', 'industry', 'revenue', 'team_size')


def _bad_request(message):
    return jsonify({'error': message}), 400


# ── Create / read ────────────────────────────────────────────────────────────

@bp.route('/api/assessments', methods=['POST'])
def create_assessment():
    """Create an assessment for an existing user, or for a new user from the given company details."""
    data = request.get_json(silent=True) or {}
    engine = get_engine()

    user_id = data.get('user_id')
    if not user_id:
        if not data.get('company_name'):
            return _bad_request('user_id or company_name is required')
        session = engine.session_factory()
        try:
            user = User(**{k: data.get(k) for k in USER_FIELDS})
            session.add(user)
            session.commit()
            user_id = user.id
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    try:
        assessment = engine.lifecycle.create_assessment(user_id)
    except ValueError as e:
        return jsonify({'error': str(e)}), 404
    return jsonify(assessment.to_dict()), 201


@bp.route('/api/assessments/<assessment_id>')
def get_assessment(assessment_id):
    """Status, counters and artifact paths."""
    engine = get_engine()
    session = engine.session_factory()
    try:
        assessment = session.get(Assessment, assessment_id)
        if not assessment:
            return jsonify({'error': 'Assessment not found'}), 404
        return jsonify(assessment.to_dict())
    finally:
        session.close()


@bp.route('/api/assessments/<assessment_id>/progress')
def get_progress(assessment_id):
    report = get_engine().progress.progress(assessment_id)
    return jsonify(report.to_dict())


@bp.route('/api/assessments/<assessment_id>/questions/<domain>')
def get_questions(assessment_id, domain):
    """The questions currently visible for one domain, follow-ups included."""
    if domain not in OPERATIONAL_DOMAINS:
        return _bad_request(f'Unknown domain: {domain}')
    engine = get_engine()
    session = engine.session_factory()
    try:
        assessment = session.get(Assessment, assessment_id)
        if not assessment:
            return jsonify({'error': 'Assessment not found'}), 404
        user = session.get(User, assessment.user_id)
        questions = engine.question_bank.questions_for(
            user.industry if user else None, domain, assessment_id, session=session,
        )
        return jsonify({'domain': domain, 'questions': [q.to_dict() for q in questions]})
    finally:
        session.close()


# ── Submission ───────────────────────────────────────────────────────────────

@bp.route('/api/assessments/<assessment_id>/responses', methods=['POST'])
def submit_responses(assessment_id):
    """Upsert answers: {"responses": [{domain_name, question_id, score, response}, ...]}."""
    data = request.get_json(silent=True) or {}
    answers = data.get('responses')
    if not isinstance(answers, list) or not answers:
        return _bad_request('responses must be a non-empty list')

    for a in answers:
        if not isinstance(a, dict) or not a.get('domain_name') or not a.get('question_id'):
            return _bad_request('each response needs domain_name and question_id')
        if a['domain_name'] not in OPERATIONAL_DOMAINS:
            return _bad_request(f"Unknown domain: {a['domain_name']}")
        score = a.get('score')
        if score is not None and (not isinstance(score, int) or isinstance(score, bool)):
            return _bad_request('score must be an integer')

    report = get_engine().lifecycle.record_responses(assessment_id, answers)
    return jsonify(report)


@bp.route('/api/assessments/<assessment_id>/documents', methods=['POST'])
def register_document(assessment_id):
    """Record metadata for a file already uploaded to object storage."""
    data = request.get_json(silent=True) or {}
    if not data.get('file_name') or not data.get('object_path'):
        return _bad_request('file_name and object_path are required')

    doc = get_engine().lifecycle.record_document(
        assessment_id,
        file_name=data['file_name'],
        object_path=data['object_path'],
        file_size=data.get('file_size'),
        file_type=data.get('file_type'),
    )
    return jsonify(doc.to_dict()), 201


# ── Analysis ─────────────────────────────────────────────────────────────────

@bp.route('/api/assessments/<assessment_id>/analysis')
def get_analysis(assessment_id):
    """Per-domain results, job history and analysis progress."""
    return jsonify(get_engine().lifecycle.analysis_status(assessment_id))


@bp.route('/api/assessments/<assessment_id>/cancel', methods=['POST'])
def cancel_assessment(assessment_id):
    data = request.get_json(silent=True) or {}
    status = get_engine().lifecycle.cancel(assessment_id, data.get('reason') or 'Cancelled')
    return jsonify({'assessment_id': assessment_id, 'status': status})


@bp.route('/api/assessments/<assessment_id>/domains/<domain>/reanalyze', methods=['POST'])
def reanalyze_domain(assessment_id, domain):
    if domain not in OPERATIONAL_DOMAINS:
        return _bad_request(f'Unknown domain: {domain}')
    job_id = get_engine().lifecycle.reanalyze(assessment_id, domain)
    return jsonify({'assessment_id': assessment_id, 'domain': domain, 'job_id': job_id}), 202
