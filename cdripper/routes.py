"""
CD Ripper Status API
"""

from flask import Blueprint, jsonify, request
from . import __version__
from . import activity
from . import ripper

main = Blueprint('main', __name__)


@main.route('/api/status')
def api_status():
    """Get current engine status"""
    engine = ripper.get_engine()
    if not engine:
        return jsonify({'state': 'idle', 'version': __version__, 'engine': False})

    status = engine.get_status()
    status['version'] = __version__
    status['engine'] = True
    return jsonify(status)


@main.route('/api/activity-log')
def api_activity_log():
    """Get recent activity log entries (newest first)"""
    limit = request.args.get('limit', 100, type=int)
    limit = max(1, min(limit, 1000))
    return jsonify({'log': activity.read_recent_lines(limit)})


@main.route('/api/history')
def api_history():
    """Get albums ripped in the last N days"""
    days = request.args.get('days', 7, type=int)
    return jsonify({'history': activity.get_recent_rips(days)})
