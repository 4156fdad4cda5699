"""
Public catalog JSON endpoints used by the front end.

Endpoints:
- /tools: visible tools, newest first
- /tools/<slug>: one visible tool with average rating and review count
- /tools/<tool_id>/reviews: reviews with author display fields (GET), post a review (POST)
- /tools/<slug>/download: log a download and return the target URL
- /csrf-token: token to send as X-CSRFToken on state-changing calls
- /healthz: liveness
"""

from __future__ import annotations
from flask import Blueprint, current_app, jsonify, request
from flask_wtf.csrf import generate_csrf
from ..extensions import get_content_filter, limiter
from ..services import catalog, supabase_client
from ..services.reviews import ReviewSubmission, REASON_NOT_AUTHENTICATED, coerce_rating
from ..utils.auth import get_current_user, get_current_user_id
from ..utils.errors import BackendError, ValidationError
from ..utils.validation import request_payload


catalog_bp = Blueprint("catalog", __name__)


def _flag(value) -> bool:
    return value is True or str(value).lower() in {"1", "true", "yes"}


@catalog_bp.route("/healthz")
def healthz():
    return jsonify({"status": "ok", "supabase": supabase_client.is_configured()})


@catalog_bp.route("/csrf-token")
def csrf_token():
    return jsonify({"csrf_token": generate_csrf()})


@catalog_bp.route("/tools")
def list_tools():
    tools = catalog.list_public_tools()
    return jsonify({"tools": [t.model_dump(mode="json") for t in tools]})


@catalog_bp.route("/tools/<slug>")
def get_tool(slug):
    tool = catalog.get_tool_with_stats(slug)
    if not tool:
        return jsonify({"success": False, "error": "Tool not found"}), 404
    return jsonify({"tool": tool.model_dump(mode="json")})


@catalog_bp.route("/tools/<tool_id>/reviews", methods=["GET"])
def list_reviews(tool_id):
    reviews = supabase_client.list_reviews(tool_id)
    average, count = catalog.tool_stats(reviews)
    return jsonify({
        "reviews": [r.model_dump(mode="json") for r in reviews],
        "average_rating": average,
        "review_count": count,
    })


@catalog_bp.route("/tools/<tool_id>/reviews", methods=["POST"])
@limiter.limit(lambda: current_app.config["REVIEW_RATE_LIMIT"])
def submit_review(tool_id):
    """
    Post a review.

    Request body (JSON or form):
        {"rating": 1-5, "body": "10 to 2000 characters, no links"}

    The response always carries the form state: on failure the rating and
    body come back unchanged so the client can keep them in the form.
    """
    data = request_payload()
    submission = ReviewSubmission(
        tool_id,
        rating=coerce_rating(data.get("rating")),
        body=str(data.get("body") or ""),
    )

    try:
        submission.submit(get_current_user(), get_content_filter())
    except ValidationError as e:
        status = 401 if e.reason == REASON_NOT_AUTHENTICATED else e.status_code
        return jsonify({"success": False, **submission.to_dict()}), status
    except BackendError as e:
        return jsonify({"success": False, **submission.to_dict()}), e.status_code

    return jsonify({"success": True, **submission.to_dict()}), 201


@catalog_bp.route("/tools/<slug>/download", methods=["POST"])
def download(slug):
    """
    Record a download and return where to send the visitor.

    Query/JSON flag `mirror` picks the mirror link instead of the primary one.
    """
    tool = supabase_client.get_tool_by_slug(slug)
    if not tool:
        return jsonify({"success": False, "error": "Tool not found"}), 404

    data = request_payload()
    mirror = _flag(data.get("mirror")) or _flag(request.args.get("mirror"))

    url = catalog.record_download(
        tool,
        get_current_user_id(),
        request.remote_addr,
        current_app.config.get("DOWNLOAD_IP_SALT", ""),
        mirror=mirror,
    )
    return jsonify({"success": True, "url": url})
