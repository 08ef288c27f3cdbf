"""Route handlers — one JSON endpoint per QueryService operation."""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from claudedash.errors import AggregationError, SessionNotFoundError

bp = Blueprint("api", __name__, url_prefix="/api")


def _service():
    return current_app.extensions["claudedash"]


@bp.errorhandler(SessionNotFoundError)
def session_not_found(e):
    return jsonify({"error": str(e)}), 404


@bp.errorhandler(AggregationError)
def aggregation_failed(e):
    return jsonify({"error": str(e)}), 503


@bp.route("/claude_stats")
def claude_stats():
    return jsonify(_service().get_claude_stats().to_dict())


@bp.route("/project_sessions")
def project_sessions():
    """Sessions for ?project_path=..."""
    path = request.args.get("project_path", "")
    return jsonify([s.to_dict() for s in _service().get_project_sessions(path)])


@bp.route("/recent_sessions")
def recent_sessions():
    limit = request.args.get("limit", 10, type=int)
    return jsonify([s.to_dict() for s in _service().get_recent_sessions(limit)])


@bp.route("/session_messages/<session_id>")
def session_messages(session_id):
    return jsonify([m.to_dict() for m in _service().get_session_messages(session_id)])


@bp.route("/session_tree/<session_id>")
def session_tree(session_id):
    """Depth-first messages with their depth, for branch-aware clients."""
    return jsonify(
        [
            dict(m.to_dict(), depth=depth)
            for depth, m in _service().get_session_tree(session_id)
        ]
    )
