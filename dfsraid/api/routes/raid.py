"""RAID node routes."""

from flask import Blueprint, Response, current_app, jsonify, request
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
import logging

from ..errors import InvalidRequest, handle_raid_errors

logger = logging.getLogger(__name__)

# Create Blueprint for RAID routes
raid_api = Blueprint('raid_api', __name__)


def _raid_node():
    return current_app.config['RAID_NODE']


@raid_api.route('/health')
def health_check():
    """Health check endpoint."""
    return {'status': 'healthy'}


@raid_api.route('/metrics')
def metrics():
    """Prometheus metrics endpoint"""
    return Response(generate_latest(), mimetype=CONTENT_TYPE_LATEST)


@raid_api.route('/raid/policies', methods=['GET'])
@handle_raid_errors
def list_policies():
    """Effective policies of the latest scan."""
    policies = _raid_node().get_all_policies()
    return jsonify({'policies': [policy.to_dict() for policy in policies]})


@raid_api.route('/raid/jobs', methods=['GET'])
@handle_raid_errors
def job_status():
    """Job counters and the jobs currently in flight."""
    raid_node = _raid_node()
    return jsonify({
        'counters': raid_node.job_counters(),
        'running': [
            {
                'job_id': handle.job_id,
                'state': state.value,
                'policy': handle.job.policy.name,
                'files': len(handle.job.files),
                'submitted_at': handle.submitted_at
            }
            for handle, state in raid_node.job_monitor.running_job_states()
        ]
    })


@raid_api.route('/raid/recover', methods=['POST'])
@handle_raid_errors
def recover():
    """Reconstruct the stripe of a file containing a byte offset."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise InvalidRequest("Request body must be a JSON object")
    path = data.get('path')
    offset = data.get('offset')
    if not isinstance(path, str) or not path.startswith('/'):
        raise InvalidRequest("path must be an absolute path")
    if isinstance(offset, bool) or not isinstance(offset, int):
        raise InvalidRequest("offset must be an integer")

    result = _raid_node().recover(path, offset)
    return jsonify({
        'recovered_path': result.recovered_path,
        'stripe_index': result.stripe_index,
        'reconstruction_required': result.reconstruction_required
    })
