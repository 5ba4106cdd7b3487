"""Suggest a category and severity for a complaint from its title and description."""
from typing import Any, Dict

from flask import current_app
from google.genai import types

from utils.ai_vision import (
    AIResponseFormatError,
    AIVisionError,
    _coerce_confidence,
    _coerce_str,
    category_names,
    generate_json,
)

SEVERITY_LEVELS = ("Critical", "High", "Medium", "Low")

# Categories the model may suggest beyond the seeded set.
EXTRA_CATEGORIES = ("Traffic", "Parks", "Noise", "Other")


def _neutral(explanation: str) -> Dict[str, Any]:
    return {
        "suggested_category": "Other",
        "severity": "Medium",
        "confidence": 0.0,
        "explanation": explanation,
    }


def _normalize_severity(value: Any) -> str:
    text = str(value or "").strip().title()
    return text if text in SEVERITY_LEVELS else "Medium"


def build_classification_prompt(title: str, description: str) -> str:
    categories = ", ".join([*category_names(), *EXTRA_CATEGORIES])
    return (
        "You are a civic issue classification AI for a government complaint portal. "
        "Analyze the following citizen complaint and classify it.\n\n"
        f"Title: {title or '(not provided)'}\n"
        f"Description: {description or '(not provided)'}\n\n"
        f"Pick exactly one category from: {categories}. "
        "Assess severity as Critical (immediate danger to life or major infrastructure failure), "
        "High (affects many people, needs urgent attention), Medium (normal course) or Low (minor, cosmetic). "
        "Return strict JSON with fields: suggested_category, severity, confidence (0-1), "
        "explanation (brief reason). JSON only."
    )


def classify_text(title: str = "", description: str = "") -> Dict[str, Any]:
    """Classify complaint text; returns a neutral result instead of raising."""
    title = (title or "").strip()
    description = (description or "").strip()
    if not title and not description:
        return _neutral("No text provided for classification")

    model_name = current_app.config.get("GEMINI_TEXT_MODEL", "gemini-2.5-flash")
    try:
        payload = generate_json(
            [types.Part.from_text(text=build_classification_prompt(title, description))],
            model_name,
        )
    except AIResponseFormatError as exc:
        current_app.logger.warning("Text classification returned unstructured output", extra={"reason": str(exc)})
        return _neutral("Text classification failed to produce structured results")
    except AIVisionError as exc:
        current_app.logger.warning("Text classification unavailable", extra={"reason": str(exc)})
        return _neutral("Classification service temporarily unavailable")

    return {
        "suggested_category": _coerce_str(payload.get("suggested_category"), "Other"),
        "severity": _normalize_severity(payload.get("severity")),
        "confidence": _coerce_confidence(payload.get("confidence"), 0.5),
        "explanation": _coerce_str(payload.get("explanation"), "No explanation provided"),
    }
