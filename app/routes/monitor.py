"""
Monitor routes — liveness, circuit breaker health, agent roster.
"""
import logging
from flask import Blueprint, jsonify
from sqlalchemy import select

from app.engine.runtime import get_engine
from app.models.agent import Agent
from app.services.circuit_breaker import get_all_breakers

logger = logging.getLogger('routes.monitor')

bp = Blueprint('monitor', __name__)


@bp.route('/health')
def health_check():
    """Liveness check."""
    return jsonify({"status": "healthy"}), 200


@bp.route('/api/health')
def api_health():
    """Circuit breaker state per external service."""
    services = {name: cb.get_health() for name, cb in get_all_breakers().items()}
    degraded = any(s['state'] != 'closed' for s in services.values())
    return jsonify({'status': 'degraded' if degraded else 'ok', 'services': services})


@bp.route('/api/health/<service>/reset', methods=['POST'])
def reset_circuit(service):
    cb = get_all_breakers().get(service)
    if cb is None:
        return jsonify({'error': f'Unknown service: {service}'}), 404
    cb.reset()
    return jsonify({'service': service, 'state': cb.state})


@bp.route('/api/agents')
def list_agents():
    """Active specialist agents, in dispatch preference order."""
    session = get_engine().session_factory()
    try:
        agents = session.scalars(
            select(Agent).where(Agent.is_active.is_(True)).order_by(Agent.created_at, Agent.id)
        ).all()
        return jsonify([a.to_dict() for a in agents])
    finally:
        session.close()
