"""
Worker Health API endpoints.

- GET  /api/workers/health          - Health of every registered worker
- GET  /api/workers/health/<name>   - Health of one worker
- POST /api/workers/health/check    - Run the liveness check now

The monitor instance is read from ``app.config['WORKER_HEALTH_MONITOR']``.
"""

from flask import Blueprint, current_app, jsonify
import logging

from outreach.models.worker_health import WorkerStatus

logger = logging.getLogger(__name__)

worker_health_bp = Blueprint('worker_health', __name__)


def get_monitor():
    return current_app.config['WORKER_HEALTH_MONITOR']


@worker_health_bp.route('', methods=['GET'])
def get_all_worker_health():
    try:
        workers = get_monitor().get_health_status()
        healthy = all(w.status == WorkerStatus.HEALTHY for w in workers)
        return jsonify({
            'success': True,
            'healthy': healthy,
            'workers': [w.to_dict() for w in workers],
        }), 200 if healthy else 503
    except Exception as e:
        logger.error(f"Error getting worker health: {e}", exc_info=True)
        return jsonify({'error': str(e)}), 500


@worker_health_bp.route('/<name>', methods=['GET'])
def get_worker_health(name: str):
    worker = get_monitor().get_worker_health(name)
    if worker is None:
        return jsonify({'error': f'Unknown worker: {name}'}), 404
    return jsonify({'success': True, 'worker': worker.to_dict()})


@worker_health_bp.route('/check', methods=['POST'])
def run_health_check():
    demoted = get_monitor().perform_health_check()
    return jsonify({'success': True, 'demoted': demoted})
