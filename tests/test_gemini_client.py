"""
Gemini client tests: prompt, JSON extraction, validation, failure handling.

Tests:
1-2.   Prompt building
3-8.   extract_json_object (prose-wrapped, nested, braces in strings, none, unbalanced)
9-13.  validate_estimate (good reply, clamping, missing/invalid fields)
14-16. No key / cancellation short-circuit without a network call
17-25. _call_gemini over a mocked urlopen (success, HTTP error, network, timeout, bad envelope),
       deadline, cancellation, concurrent calls
26-28. estimate() returns None on every failure, prefixes AI details
"""

import json
import socket
import threading
import time
import urllib.error
from unittest.mock import patch, MagicMock

import pytest

from carbonlog.estimator.gemini_client import (
    GeminiEstimator, EstimatorUnavailable, UnavailableReason,
    extract_json_object, validate_estimate, GENERATION_CONFIG,
)


def _gemini_envelope(text):
    """Bytes of a generateContent reply carrying text."""
    return json.dumps({
        "candidates": [{"content": {"parts": [{"text": text}]}}]
    }).encode("utf-8")


def _mock_urlopen_returning(body):
    mock_urlopen = MagicMock()
    mock_urlopen.return_value.__enter__.return_value.read.return_value = body
    return mock_urlopen


# ============================================================
# Prompt
# ============================================================

def test_prompt_contains_activity_and_schema(gemini):
    prompt = gemini._build_prompt('Drove 10km to "work"')
    assert 'Drove 10km to \\"work\\"' in prompt
    assert "carbonImpact" in prompt
    assert "ONLY a JSON object" in prompt
    for category in ("transportation", "food", "energy", "shopping", "other"):
        assert category in prompt


def test_prompt_has_category_guidance(gemini):
    prompt = gemini._build_prompt("anything")
    assert "fuel efficiency" in prompt
    assert "production methods" in prompt
    assert "duration" in prompt
    assert "lifecycle" in prompt
    assert "reasonable assumptions" in prompt


# ============================================================
# JSON extraction
# ============================================================

def test_extract_plain_object():
    assert extract_json_object('{"a": 1}') == '{"a": 1}'


def test_extract_object_wrapped_in_prose_and_fences():
    text = 'Sure! Here is the estimate:\n```json\n{"carbonImpact": 1.9, "category": "food"}\n```\nHope it helps {}'
    assert extract_json_object(text) == '{"carbonImpact": 1.9, "category": "food"}'


def test_extract_nested_object():
    text = 'x {"a": {"b": {"c": 1}}, "d": 2} y {"e": 3}'
    assert extract_json_object(text) == '{"a": {"b": {"c": 1}}, "d": 2}'


def test_extract_ignores_braces_in_strings():
    text = '{"details": "uses } and { and \\" quotes", "n": 1} trailing'
    block = extract_json_object(text)
    assert json.loads(block) == {"details": 'uses } and { and " quotes', "n": 1}


def test_extract_no_object():
    assert extract_json_object("I cannot help with that.") is None
    assert extract_json_object("") is None
    assert extract_json_object(None) is None


def test_extract_unbalanced_object():
    assert extract_json_object('{"carbonImpact": 3, "category": "food"') is None


# ============================================================
# Validation
# ============================================================

def test_validate_good_reply():
    data = {"carbonImpact": 4, "category": "food", "details": "beef burger"}
    assert validate_estimate(data) == {
        "carbonImpact": 4.0, "category": "food", "details": "beef burger",
    }


def test_validate_clamps_impact():
    high = validate_estimate({"carbonImpact": 5000, "category": "other", "details": ""})
    low = validate_estimate({"carbonImpact": -3.5, "category": "other", "details": ""})
    assert high["carbonImpact"] == 1000.0
    assert low["carbonImpact"] == 0.0


@pytest.mark.parametrize("data", [
    {"carbonImpact": 1.0, "details": "no category"},
    {"carbonImpact": 1.0, "category": "travel", "details": "bad category"},
    {"carbonImpact": "1.0", "category": "food", "details": "string impact"},
    {"carbonImpact": True, "category": "food", "details": "bool impact"},
    {"carbonImpact": float("nan"), "category": "food", "details": "nan"},
    {"carbonImpact": 10 ** 400, "category": "food", "details": "overflow"},
    {"carbonImpact": 1.0, "category": "food"},
    {"carbonImpact": 1.0, "category": "food", "details": ["list"]},
    ["not", "an", "object"],
])
def test_validate_rejects_bad_replies(data):
    with pytest.raises(EstimatorUnavailable) as exc:
        validate_estimate(data)
    assert exc.value.reason == UnavailableReason.SCHEMA


def test_parse_response_reasons(gemini):
    with pytest.raises(EstimatorUnavailable) as exc:
        gemini._parse_response("no json at all")
    assert exc.value.reason == UnavailableReason.NO_JSON

    with pytest.raises(EstimatorUnavailable) as exc:
        gemini._parse_response("{carbonImpact: 3}")
    assert exc.value.reason == UnavailableReason.INVALID_JSON


# ============================================================
# Short-circuits
# ============================================================

def test_no_api_key_makes_no_request():
    """Missing key is a normal state, no network call at all."""
    client = GeminiEstimator(api_key="")
    assert not client.configured
    with patch("urllib.request.urlopen") as mock_urlopen:
        assert client.estimate("drove 10km") is None
        with pytest.raises(EstimatorUnavailable) as exc:
            client._attempt("drove 10km")
    assert exc.value.reason == UnavailableReason.NO_CREDENTIAL
    mock_urlopen.assert_not_called()


def test_key_from_settings_when_not_given():
    with patch("carbonlog.estimator.gemini_client.settings") as mock_settings:
        mock_settings.GEMINI_API_KEY = "from-settings"
        mock_settings.GEMINI_MODEL = "gemini-2.0-flash"
        mock_settings.GEMINI_TIMEOUT_SECONDS = 5.0
        mock_settings.GEMINI_API_BASE = "https://example.test/v1beta/"
        client = GeminiEstimator()
    assert client.api_key == "from-settings"
    assert client.timeout == 5.0
    assert client.api_base == "https://example.test/v1beta"


def test_cancelled_before_request(gemini):
    cancel = threading.Event()
    cancel.set()
    with patch.object(GeminiEstimator, "_call_gemini") as mock_call:
        with pytest.raises(EstimatorUnavailable) as exc:
            gemini._attempt("drove 10km", cancel_event=cancel)
    assert exc.value.reason == UnavailableReason.CANCELLED
    mock_call.assert_not_called()


# ============================================================
# HTTP call
# ============================================================

def test_call_gemini_success(gemini):
    mock_urlopen = _mock_urlopen_returning(_gemini_envelope('{"carbonImpact": 2}'))
    with patch("urllib.request.urlopen", mock_urlopen):
        text = gemini._call_gemini("prompt", 2.0)
    assert text == '{"carbonImpact": 2}'

    req = mock_urlopen.call_args[0][0]
    assert mock_urlopen.call_args[1]["timeout"] == 2.0
    assert "models/gemini-test:generateContent?key=test-key" in req.full_url
    assert req.get_method() == "POST"
    body = json.loads(req.data)
    assert body["contents"][0]["parts"][0]["text"] == "prompt"
    assert body["generationConfig"] == GENERATION_CONFIG


def test_call_gemini_http_error(gemini):
    error = urllib.error.HTTPError("https://x", 503, "Service Unavailable", {}, None)
    with patch("urllib.request.urlopen", side_effect=error):
        with pytest.raises(EstimatorUnavailable) as exc:
            gemini._call_gemini("prompt", 2.0)
    assert exc.value.reason == UnavailableReason.HTTP_STATUS
    assert "503" in str(exc.value)


def test_call_gemini_network_error(gemini):
    with patch("urllib.request.urlopen", side_effect=urllib.error.URLError("connection refused")):
        with pytest.raises(EstimatorUnavailable) as exc:
            gemini._call_gemini("prompt", 2.0)
    assert exc.value.reason == UnavailableReason.NETWORK


def test_call_gemini_socket_timeout(gemini):
    with patch("urllib.request.urlopen", side_effect=socket.timeout("timed out")):
        with pytest.raises(EstimatorUnavailable) as exc:
            gemini._call_gemini("prompt", 2.0)
    assert exc.value.reason == UnavailableReason.TIMEOUT


def test_call_gemini_bad_envelope(gemini):
    mock_urlopen = _mock_urlopen_returning(b'{"error": "quota"}')
    with patch("urllib.request.urlopen", mock_urlopen):
        with pytest.raises(EstimatorUnavailable) as exc:
            gemini._call_gemini("prompt", 2.0)
    assert exc.value.reason == UnavailableReason.MALFORMED_RESPONSE


def test_slow_call_hits_deadline(gemini):
    """A call that outlives the deadline is abandoned, not awaited."""
    def slow_call(prompt, timeout):
        time.sleep(1.0)
        return '{"carbonImpact": 1, "category": "food", "details": "late"}'

    with patch.object(gemini, "_call_gemini", side_effect=slow_call):
        started = time.monotonic()
        with pytest.raises(EstimatorUnavailable) as exc:
            gemini._attempt("ate lunch", timeout=0.2)
        elapsed = time.monotonic() - started
    assert exc.value.reason == UnavailableReason.TIMEOUT
    assert elapsed < 0.9


def test_cancel_during_call(gemini):
    cancel = threading.Event()

    def slow_call(prompt, timeout):
        cancel.set()
        time.sleep(0.5)
        return '{"carbonImpact": 1, "category": "food", "details": "late"}'

    with patch.object(gemini, "_call_gemini", side_effect=slow_call):
        with pytest.raises(EstimatorUnavailable) as exc:
            gemini._attempt("ate lunch", timeout=2.0, cancel_event=cancel)
    assert exc.value.reason == UnavailableReason.CANCELLED


def test_concurrent_calls_do_not_queue(gemini):
    """Sixteen simultaneous 0.5s calls all finish inside a 1.5s deadline."""
    def slow_call(prompt, timeout):
        time.sleep(0.5)
        return '{"carbonImpact": 1.5, "category": "food", "details": "lunch"}'

    results = [None] * 16

    def worker(i):
        results[i] = gemini.estimate("ate lunch", timeout=1.5)

    with patch.object(gemini, "_call_gemini", side_effect=slow_call):
        threads = [threading.Thread(target=worker, args=(i,)) for i in range(len(results))]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

    for result in results:
        assert result is not None
        assert result["carbonImpact"] == 1.5


# ============================================================
# estimate()
# ============================================================

def test_estimate_success_prefixes_details(gemini):
    reply = 'Here you go:\n{"carbonImpact": 1.92, "category": "transportation", "details": "10 km by car"}'
    with patch.object(gemini, "_call_gemini", return_value=reply):
        result = gemini.estimate("drove 10km to work")
    assert result == {
        "carbonImpact": 1.92,
        "category": "transportation",
        "details": "AI Analysis: 10 km by car",
    }


@pytest.mark.parametrize("reply", [
    "Sorry, I can't estimate that.",
    '{"carbonImpact": 3.0, "details": "missing category"}',
    '{"carbonImpact": 3.0, "category": "food", "details": "cut off"',
])
def test_estimate_bad_reply_returns_none(gemini, reply):
    with patch.object(gemini, "_call_gemini", return_value=reply):
        assert gemini.estimate("ate lunch") is None


def test_estimate_unexpected_error_returns_none(gemini):
    with patch.object(gemini, "_call_gemini", side_effect=RuntimeError("boom")):
        assert gemini.estimate("ate lunch") is None
