"""Gemini integration for checking that uploaded evidence shows a civic issue."""
import json
import os
import re
from typing import Any, Dict, Optional

from flask import current_app
from google import genai
from google.genai import types

from utils.categories import DEFAULT_CATEGORIES

NOT_A_CIVIC_ISSUE = "Not a Civic Issue"
ALLOWED_IMAGE_MIME_TYPES = {"image/jpeg", "image/png", "image/webp"}


class AIVisionError(Exception):
    """Raised when Gemini cannot return a usable result."""


class AIResponseFormatError(AIVisionError):
    """Gemini answered, but not with a JSON object."""


def _first_json_block(text: str) -> Optional[str]:
    """Extract the first JSON object block from free-form text."""
    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end != -1 and end > start:
        return text[start : end + 1]
    return None


def _safe_json_loads(raw_text: str) -> Dict[str, Any]:
    """Parse JSON robustly, tolerating leading/trailing noise or code fences."""
    cleaned = raw_text.strip()
    # Remove common code fences if present
    cleaned = re.sub(r"^```[a-zA-Z0-9_-]*", "", cleaned).strip()
    cleaned = re.sub(r"```$", "", cleaned).strip()
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as exc:
        block = _first_json_block(cleaned)
        if block is None:
            raise AIResponseFormatError("Gemini returned non-JSON output") from exc
    try:
        return json.loads(block)
    except json.JSONDecodeError as exc:
        # A garbled object fails open, the same as an outage.
        raise AIVisionError("Gemini returned a malformed JSON object") from exc


def _coerce_str(value: Any, default: str) -> str:
    if value is None:
        return default
    text = str(value).strip()
    return text or default


def _coerce_confidence(value: Any, default: float) -> float:
    if value is None or value == "" or isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return min(max(number, 0.0), 1.0)


def _coerce_bool(value: Any, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if value in {"true", "True", "1", 1}:  # tolerant parsing
        return True
    if value in {"false", "False", "0", 0}:
        return False
    return default


def category_names() -> list[str]:
    return [name for name, *_ in DEFAULT_CATEGORIES]


def generate_json(contents: list, model_name: str) -> Dict[str, Any]:
    """Send ``contents`` to Gemini and parse the JSON object it returns."""
    api_key = current_app.config.get("GEMINI_API_KEY") or os.getenv("GEMINI_API_KEY")
    if not api_key:
        raise AIVisionError("GEMINI_API_KEY is not configured")

    client = genai.Client(api_key=api_key)
    try:
        response = client.models.generate_content(
            model=model_name,
            contents=contents,
            config=types.GenerateContentConfig(response_mime_type="application/json", temperature=0.1),
        )
    except Exception as exc:  # pragma: no cover - relies on remote service
        raise AIVisionError("Gemini request failed") from exc

    raw_text = (response.text or "").strip()
    if not raw_text:
        raise AIResponseFormatError("Gemini returned empty response")
    payload = _safe_json_loads(raw_text)
    if not isinstance(payload, dict):
        raise AIResponseFormatError("Gemini returned a non-object JSON payload")
    return payload


def build_vision_prompt() -> str:
    options = ", ".join([*category_names(), NOT_A_CIVIC_ISSUE])
    return (
        "You are an image analysis system for a civic issue reporting platform. "
        "Look at this image carefully and independently determine what you see. "
        "Describe what is visible objectively and decide whether it shows a real civic or infrastructure issue "
        "(damaged road, overflowing garbage, broken street light, water leak, stray animals, drainage problem, "
        "electrical hazard or public safety concern). "
        "If it does not (a selfie, a person, a screenshot, a meme, food, an indoor scene, a random object), "
        f"set is_relevant to false and suggested_category to \"{NOT_A_CIVIC_ISSUE}\". "
        "Do not assume the image shows a civic issue. "
        "Return strict JSON with fields: is_relevant (boolean), confidence (0-1), "
        "detected_issue (objective description), "
        f"suggested_category (one of: {options}), explanation (why you chose this category). "
        "Do not include markdown. JSON only."
    )


def verify_image(image_bytes: bytes, mime_type: str = "image/jpeg") -> Dict[str, Any]:
    """Classify evidence before submission; never raises.

    When the model answers without usable JSON the image is treated as not
    relevant. When the service itself is unavailable the check fails open so a
    citizen is never blocked from reporting.
    """
    model_name = current_app.config.get("GEMINI_VISION_MODEL", "gemini-2.5-flash")
    current_app.logger.info("Dispatching Gemini image verification", extra={"model": model_name, "mime_type": mime_type})
    try:
        payload = generate_json(
            [
                types.Part.from_bytes(data=image_bytes, mime_type=mime_type),
                types.Part.from_text(text=build_vision_prompt()),
            ],
            model_name,
        )
    except AIResponseFormatError as exc:
        current_app.logger.warning("Image verification returned unstructured output", extra={"reason": str(exc)})
        return {
            "is_relevant": False,
            "confidence": 0.0,
            "detected_issue": "Unable to analyze image",
            "suggested_category": "Other",
            "explanation": "Image analysis failed to produce structured results",
        }
    except AIVisionError as exc:
        current_app.logger.warning("Image verification unavailable", extra={"reason": str(exc)})
        return {
            "is_relevant": True,
            "confidence": 0.0,
            "detected_issue": "Verification unavailable",
            "suggested_category": "Other",
            "explanation": "Image verification service temporarily unavailable",
        }

    return {
        "is_relevant": _coerce_bool(payload.get("is_relevant"), False),
        "confidence": _coerce_confidence(payload.get("confidence"), 0.0),
        "detected_issue": _coerce_str(payload.get("detected_issue"), "Unable to determine"),
        "suggested_category": _coerce_str(payload.get("suggested_category"), "Other"),
        "explanation": _coerce_str(payload.get("explanation"), "No explanation provided"),
    }
