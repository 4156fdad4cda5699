"""
Admin routes for managing the tool catalog.

Every route except the index sits behind @require_admin; the catalog service
checks the gate again before each write. Writes drop both the admin and the
public listing caches.
"""

from __future__ import annotations
from flask import Blueprint, jsonify, request
from steamfamily.services import catalog, supabase_client
from steamfamily.utils.auth import get_admin_gate, get_current_profile, is_authenticated, require_admin
from steamfamily.utils.validation import request_payload

admin_bp = Blueprint("admin", __name__, url_prefix="/admin")


@admin_bp.route("/")
def index():
    """Gate state for the current user: unknown, denied or granted."""
    if not is_authenticated():
        return jsonify({"state": None, "authenticated": False}), 401
    return jsonify({"state": get_admin_gate().value, "authenticated": True})


@admin_bp.route("/tools", methods=["GET"])
@require_admin
def list_tools():
    """All tools, hidden ones included, newest first."""
    tools = catalog.list_admin_tools(get_current_profile())
    return jsonify({"tools": [t.model_dump(mode="json") for t in tools]})


@admin_bp.route("/tools", methods=["POST"])
@require_admin
def create_tool():
    tool = catalog.create_tool(get_current_profile(), request_payload())
    return jsonify({"success": True, "message": "Tool created successfully", "tool": tool.model_dump(mode="json")}), 201


@admin_bp.route("/tools/<tool_id>", methods=["GET"])
@require_admin
def get_tool(tool_id):
    """One tool by id, hidden or not (for the edit form)."""
    tool = supabase_client.get_tool(tool_id)
    if not tool:
        return jsonify({"success": False, "error": "Tool not found"}), 404
    return jsonify({"tool": tool.model_dump(mode="json")})


@admin_bp.route("/tools/<tool_id>", methods=["PUT"])
@require_admin
def update_tool(tool_id):
    tool = catalog.update_tool(get_current_profile(), tool_id, request_payload())
    return jsonify({"success": True, "message": "Tool updated successfully", "tool": tool.model_dump(mode="json")})


@admin_bp.route("/tools/<tool_id>", methods=["DELETE"])
@require_admin
def delete_tool(tool_id):
    catalog.delete_tool(get_current_profile(), tool_id)
    return jsonify({"success": True, "message": "Tool deleted successfully"})


@admin_bp.route("/tools/<tool_id>/downloads")
@require_admin
def downloads(tool_id):
    """Recent download records for one tool."""
    limit = max(1, min(request.args.get("limit", 100, type=int) or 100, 500))
    logs = supabase_client.list_download_logs(tool_id, limit=limit)
    return jsonify({"downloads": [log.model_dump(mode="json") for log in logs], "count": len(logs)})
