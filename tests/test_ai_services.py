"""Gemini-backed image verification and text classification."""

import json
from types import SimpleNamespace

import pytest

from utils import ai_vision
from utils.ai_vision import AIResponseFormatError, AIVisionError, generate_json, verify_image
from utils.text_classifier import classify_text


class FakeModels:
    def __init__(self, text=None, error=None):
        self.text = text
        self.error = error
        self.calls = []

    def generate_content(self, **kwargs):
        self.calls.append(kwargs)
        if self.error:
            raise self.error
        return SimpleNamespace(text=self.text)


@pytest.fixture
def gemini(ctx, monkeypatch):
    """Replace the Gemini client; tests set ``text`` or ``error`` on the returned models stub."""
    models = FakeModels()
    ctx.config["GEMINI_API_KEY"] = "test-key"
    monkeypatch.setattr(ai_vision.genai, "Client", lambda api_key: SimpleNamespace(models=models))
    return models


class TestGenerateJson:
    """Response parsing and error classification."""

    def test_missing_key(self, ctx, monkeypatch):
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        with pytest.raises(AIVisionError):
            generate_json(["hello"], "gemini-2.5-flash")

    def test_parses_fenced_json(self, gemini):
        gemini.text = '```json\n{"ok": true}\n```'
        assert generate_json(["hello"], "gemini-2.5-flash") == {"ok": True}
        assert gemini.calls[0]["model"] == "gemini-2.5-flash"

    def test_extracts_embedded_object(self, gemini):
        gemini.text = 'Here you go: {"ok": 1} hope that helps'
        assert generate_json(["hello"], "m") == {"ok": 1}

    @pytest.mark.parametrize("text", ["", "not json at all", "[1, 2, 3]"])
    def test_unusable_output(self, gemini, text):
        gemini.text = text
        with pytest.raises(AIResponseFormatError):
            generate_json(["hello"], "m")

    def test_malformed_object_is_a_service_error(self, gemini):
        gemini.text = '{"is_relevant": true, oops}'
        with pytest.raises(AIVisionError) as excinfo:
            generate_json(["hello"], "m")
        assert not isinstance(excinfo.value, AIResponseFormatError)

    def test_transport_failure(self, gemini):
        gemini.error = ConnectionError("network down")
        with pytest.raises(AIVisionError) as excinfo:
            generate_json(["hello"], "m")
        assert not isinstance(excinfo.value, AIResponseFormatError)


class TestVerifyImage:
    """Evidence checks never raise."""

    def test_relevant_image(self, gemini):
        gemini.text = json.dumps(
            {
                "is_relevant": True,
                "confidence": 0.92,
                "detected_issue": "Large pothole on asphalt road",
                "suggested_category": "Pothole",
                "explanation": "Visible road surface damage",
            }
        )

        result = verify_image(b"\xff\xd8\xff", "image/jpeg")

        assert result["is_relevant"] is True
        assert result["confidence"] == 0.92
        assert result["suggested_category"] == "Pothole"

    def test_coerces_loose_fields(self, gemini):
        gemini.text = json.dumps({"is_relevant": "false", "confidence": 7})

        result = verify_image(b"img", "image/png")

        assert result["is_relevant"] is False
        assert result["confidence"] == 1.0
        assert result["suggested_category"] == "Other"

    def test_unstructured_output_is_not_relevant(self, gemini):
        gemini.text = "I think this is a cat"

        result = verify_image(b"img", "image/png")

        assert result["is_relevant"] is False
        assert result["confidence"] == 0.0
        assert result["explanation"] == "Image analysis failed to produce structured results"

    def test_malformed_object_fails_open(self, gemini):
        gemini.text = 'Sure! {"is_relevant": false, "explanation": "cut off}'

        result = verify_image(b"img", "image/png")

        assert result["is_relevant"] is True
        assert result["explanation"] == "Image verification service temporarily unavailable"

    def test_service_outage_fails_open(self, gemini):
        gemini.error = TimeoutError("deadline exceeded")

        result = verify_image(b"img", "image/webp")

        assert result["is_relevant"] is True
        assert result["confidence"] == 0.0
        assert result["explanation"] == "Image verification service temporarily unavailable"


class TestClassifyText:
    """Category and severity suggestions."""

    def test_classifies(self, gemini):
        gemini.text = json.dumps(
            {"suggested_category": "Water Leakage", "severity": "high", "confidence": 0.8, "explanation": "Pipe burst"}
        )

        result = classify_text("Pipe burst", "Water everywhere on 5th cross")

        assert result == {
            "suggested_category": "Water Leakage",
            "severity": "High",
            "confidence": 0.8,
            "explanation": "Pipe burst",
        }

    def test_unknown_severity_defaults_to_medium(self, gemini):
        gemini.text = json.dumps({"suggested_category": "Noise", "severity": "apocalyptic"})

        result = classify_text("Loud music", "")

        assert result["severity"] == "Medium"
        assert result["confidence"] == 0.5

    def test_empty_text_skips_model(self, gemini):
        result = classify_text("  ", "")

        assert result["explanation"] == "No text provided for classification"
        assert gemini.calls == []

    def test_unstructured_output(self, gemini):
        gemini.text = "Pothole, probably"
        result = classify_text("Hole", "In the road")
        assert result["explanation"] == "Text classification failed to produce structured results"
        assert result["confidence"] == 0.0

    def test_malformed_object(self, gemini):
        gemini.text = '{"suggested_category": "Pothole", "severity": }'
        result = classify_text("Hole", "In the road")
        assert result["explanation"] == "Classification service temporarily unavailable"

    def test_service_outage(self, gemini):
        gemini.error = RuntimeError("quota exceeded")
        result = classify_text("Hole", "In the road")
        assert result["explanation"] == "Classification service temporarily unavailable"
        assert result["suggested_category"] == "Other"
