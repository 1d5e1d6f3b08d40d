"""
Payment webhook — the engine's only payment input: "settled" or "failed"
for an assessment.

Accepts a plain event ({"event": "settled", "assessment_id": ..., "payment_reference": ...})
or a Stripe-style payment_intent event carrying the assessment id in metadata.
"""
import hmac
import logging
from flask import Blueprint, request, jsonify

from app.config import PAYMENT_WEBHOOK_SECRET
from app.engine.runtime import get_engine

logger = logging.getLogger('routes.payments')

bp = Blueprint('payments', __name__)

STRIPE_EVENTS = {
    'payment_intent.succeeded': 'settled',
    'payment_intent.payment_failed': 'failed',
}


def _parse_event(data):
    """Return (kind, assessment_id, reference) or None if the event is not for us."""
    if data.get('type') in STRIPE_EVENTS:
        intent = (data.get('data') or {}).get('object') or {}
        metadata = intent.get('metadata') or {}
        return STRIPE_EVENTS[data['type']], metadata.get('assessment_id'), intent.get('id')
    if data.get('event') in ('settled', 'failed'):
        return data['event'], data.get('assessment_id'), data.get('payment_reference')
    return None


@bp.route('/webhook/payment', methods=['POST'])
def payment_webhook():
    if PAYMENT_WEBHOOK_SECRET:
        supplied = request.headers.get('X-Webhook-Secret', '')
        if not hmac.compare_digest(supplied, PAYMENT_WEBHOOK_SECRET):
            logger.warning("Payment webhook rejected: bad secret")
            return jsonify({'error': 'Unauthorized'}), 401

    data = request.get_json(silent=True) or {}
    parsed = _parse_event(data)
    if parsed is None:
        return jsonify({'received': True, 'ignored': True})

    kind, assessment_id, reference = parsed
    if not assessment_id:
        return jsonify({'error': 'assessment_id missing from payment event'}), 400

    lifecycle = get_engine().lifecycle
    if kind == 'settled':
        status = lifecycle.confirm_payment(assessment_id, payment_reference=reference)
    else:
        status = lifecycle.payment_failed(assessment_id)
    logger.info("Payment %s for assessment %s → %s", kind, assessment_id[:8], status)
    return jsonify({'received': True, 'assessment_id': assessment_id, 'status': status})
