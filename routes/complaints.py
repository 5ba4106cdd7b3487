"""Complaint intake, lifecycle, community feed and dashboard blueprint."""
import base64
import binascii
from typing import Any, Dict

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from utils.ai_vision import ALLOWED_IMAGE_MIME_TYPES, verify_image
from utils.decorators import roles_required
from utils.errors import ValidationError
from utils.fraud_heuristics import nearby_open_complaints, self_check_flags
from utils.lifecycle import assemble_read_projection, create_complaint, find_complaint, toggle_vote, update_status
from utils.reporting import (
    admin_complaints,
    analytics,
    community_feed,
    complaint_stats,
    complaint_timeline,
    heatmap,
    my_complaints,
    notifications_for,
    public_stats,
)
from utils.text_classifier import classify_text
from utils.visibility import duplicate_projection

complaints_bp = Blueprint("complaints", __name__, url_prefix="/api/complaints")


def _json_body() -> Dict[str, Any]:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    return payload


def _viewer():
    user = current_user._get_current_object()
    return user if user.is_authenticated else None


def _float_or_none(value):
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _decode_image(payload: Dict[str, Any]) -> tuple[bytes, str]:
    upload = request.files.get("image")
    if upload is not None:
        return upload.read(), (upload.mimetype or "image/jpeg")

    raw = payload.get("image")
    if not raw or not isinstance(raw, str):
        raise ValidationError("Image data is required")
    mime_type = str(payload.get("mime_type") or "image/jpeg")
    if raw.startswith("data:") and "," in raw:
        header, raw = raw.split(",", 1)
        mime_type = header[5:].split(";", 1)[0] or mime_type
    try:
        data = base64.b64decode(raw, validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError("Image data must be base64 encoded")
    return data, mime_type


def _success(data, status: int = 200, **extra):
    body = {"status": "success", "data": data}
    body.update(extra)
    return jsonify(body), status


@complaints_bp.route("", methods=["GET"])
@complaints_bp.route("/", methods=["GET"])
@roles_required("admin", "worker")
def list_complaints():
    complaints = admin_complaints()
    return _success({"complaints": complaints}, results=len(complaints))


@complaints_bp.route("", methods=["POST"])
@complaints_bp.route("/", methods=["POST"])
@login_required
def submit_complaint():
    summary = create_complaint(current_user._get_current_object(), _json_body())
    return _success({"complaint": summary}, 201)


@complaints_bp.route("/community", methods=["GET"])
def community():
    feed = community_feed(
        page=request.args.get("page", 1, type=int),
        limit=request.args.get("limit", type=int),
        sort=request.args.get("sort", "newest"),
        category=request.args.get("category"),
    )
    posts = feed.pop("posts")
    return _success({"posts": posts}, **feed)


@complaints_bp.route("/stats", methods=["GET"])
def stats():
    return _success(complaint_stats())


@complaints_bp.route("/public-stats", methods=["GET"])
def homepage_stats():
    return _success(public_stats())


@complaints_bp.route("/analytics", methods=["GET"])
def dashboard_analytics():
    return _success(analytics())


@complaints_bp.route("/heatmap", methods=["GET"])
def heatmap_data():
    return _success(heatmap(request.args.get("period", type=int)))


@complaints_bp.route("/check-duplicate", methods=["POST"])
def check_duplicate():
    payload = _json_body()
    duplicates = nearby_open_complaints(_float_or_none(payload.get("latitude")), _float_or_none(payload.get("longitude")))
    return _success({"duplicates": [duplicate_projection(c) for c in duplicates]})


@complaints_bp.route("/verify-image", methods=["POST"])
def verify_evidence():
    image_bytes, mime_type = _decode_image(_json_body() if request.is_json else {})
    if mime_type not in ALLOWED_IMAGE_MIME_TYPES:
        raise ValidationError("Only JPEG, PNG or WEBP images are supported")
    if not image_bytes:
        raise ValidationError("Image data is required")
    return _success(verify_image(image_bytes, mime_type))


@complaints_bp.route("/classify-text", methods=["POST"])
def classify():
    payload = _json_body()
    return _success(classify_text(str(payload.get("title") or ""), str(payload.get("description") or "")))


@complaints_bp.route("/mine", methods=["GET"])
@login_required
def mine():
    complaints = my_complaints(current_user)
    return _success({"complaints": complaints}, results=len(complaints))


@complaints_bp.route("/notifications", methods=["GET"])
@login_required
def notifications():
    return _success({"notifications": notifications_for(current_user)})


@complaints_bp.route("/user/fraud-check", methods=["GET"])
@login_required
def fraud_check():
    flags = self_check_flags(current_user.id)
    return _success({"flags": flags, "is_flagged": bool(flags)})


@complaints_bp.route("/<complaint_ref>", methods=["GET"])
def complaint_detail(complaint_ref):
    complaint = find_complaint(complaint_ref)
    return _success({"complaint": assemble_read_projection(_viewer(), complaint)})


@complaints_bp.route("/<complaint_ref>/timeline", methods=["GET"])
def timeline(complaint_ref):
    complaint = find_complaint(complaint_ref)
    return _success({"timeline": complaint_timeline(_viewer(), complaint)})


@complaints_bp.route("/<complaint_ref>/upvote", methods=["POST"])
@login_required
def upvote(complaint_ref):
    result = toggle_vote(current_user._get_current_object(), complaint_ref)
    message = "Vote added" if result["voted"] else "Vote removed"
    return jsonify({"status": "success", "message": message, "voted": result["voted"]}), (201 if result["voted"] else 200)


@complaints_bp.route("/<complaint_ref>/status", methods=["PATCH"])
@login_required
def change_status(complaint_ref):
    payload = _json_body()
    summary = update_status(
        current_user._get_current_object(),
        complaint_ref,
        payload.get("status"),
        payload.get("resolution_photo_url"),
    )
    return _success(summary)
