"""Monitoring and health check endpoints"""
from flask import Blueprint, jsonify

from app.services.error_tracker import error_tracker
from app.services.moderation.rule_engine import rule_registry

monitoring_bp = Blueprint('monitoring', __name__)


@monitoring_bp.route('/health')
def health_check():
    """Health check for load balancers, with recent pipeline failure counts"""
    return jsonify({
        'status': 'healthy',
        'service': 'ModerationPipeline',
        'active_rules': len(rule_registry.get_active_rules()),
        'errors': error_tracker.get_error_stats()
    })
