"""
Gemini-backed carbon estimate for a free-text activity.

One attempt per call, no retries. Every failure (no key, network error,
HTTP error, timeout, cancellation, unparseable or invalid reply) ends up as
None from estimate(), and the caller falls back to the rule engine.
"""

import enum
import json
import logging
import math
import socket
import threading
import time
import urllib.error
import urllib.parse
import urllib.request
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Optional

from ..config import settings
from ..models import VALID_CATEGORIES
from .validator import clamp_impact

logger = logging.getLogger(__name__)

# Longest reply prefix scanned for a JSON object
MAX_SCAN_CHARS = 20000

# How often a pending call checks its cancel token
_POLL_SECONDS = 0.05

GENERATION_CONFIG = {
    "temperature": 0.1,
    "topK": 1,
    "topP": 1,
    "maxOutputTokens": 1024,
}


class UnavailableReason(str, enum.Enum):
    NO_CREDENTIAL = "no_credential"
    CANCELLED = "cancelled"
    TIMEOUT = "timeout"
    NETWORK = "network"
    HTTP_STATUS = "http_status"
    MALFORMED_RESPONSE = "malformed_response"
    NO_JSON = "no_json"
    INVALID_JSON = "invalid_json"
    SCHEMA = "schema"


class EstimatorUnavailable(Exception):
    """Gemini could not produce a usable estimate this time."""

    def __init__(self, reason: UnavailableReason, message: str = ""):
        self.reason = reason
        self.message = message
        super().__init__("%s: %s" % (reason.value, message) if message else reason.value)


def extract_json_object(text: str) -> Optional[str]:
    """
    Return the first balanced top-level {...} block in text, or None.

    Braces inside JSON string literals are ignored. Only the first
    MAX_SCAN_CHARS characters are scanned.
    """
    if not isinstance(text, str):
        return None
    text = text[:MAX_SCAN_CHARS]
    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
    return None


def validate_estimate(data) -> dict:
    """
    Check a parsed reply against the estimate schema.

    Returns {"carbonImpact", "category", "details"} with the impact clamped.
    Raises EstimatorUnavailable(SCHEMA) on any violation.
    """
    if not isinstance(data, dict):
        raise EstimatorUnavailable(UnavailableReason.SCHEMA, "reply is not a JSON object")

    impact = data.get("carbonImpact")
    if isinstance(impact, bool) or not isinstance(impact, (int, float)):
        raise EstimatorUnavailable(UnavailableReason.SCHEMA, "carbonImpact is not a number: %r" % (impact,))
    try:
        impact = float(impact)
    except OverflowError:
        impact = math.inf
    if not math.isfinite(impact):
        raise EstimatorUnavailable(UnavailableReason.SCHEMA, "carbonImpact is not finite")

    category = data.get("category")
    if category not in VALID_CATEGORIES:
        raise EstimatorUnavailable(UnavailableReason.SCHEMA, "unknown category: %r" % (category,))

    details = data.get("details")
    if not isinstance(details, str):
        raise EstimatorUnavailable(UnavailableReason.SCHEMA, "details is not a string")

    return {
        "carbonImpact": clamp_impact(impact),
        "category": category,
        "details": details,
    }


class GeminiEstimator:
    """
    Asks Gemini for a {carbonImpact, category, details} estimate.

    Usage:
        estimator = GeminiEstimator()
        estimate = estimator.estimate("drove 10km to work")
        if estimate:
            # Use model estimate
        else:
            # Fall back to rules
    """

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None,
                 timeout: Optional[float] = None, api_base: Optional[str] = None):
        self.api_key = settings.GEMINI_API_KEY if api_key is None else api_key
        self.model = model or settings.GEMINI_MODEL
        self.timeout = timeout if timeout is not None else settings.GEMINI_TIMEOUT_SECONDS
        self.api_base = (api_base or settings.GEMINI_API_BASE).rstrip("/")

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def estimate(self, description: str, timeout: Optional[float] = None,
                 cancel_event: Optional[threading.Event] = None) -> Optional[dict]:
        """
        Estimate via Gemini.

        Args:
            description: The activity as the user wrote it (trimmed).
            timeout: Seconds before giving up; defaults to the configured one.
            cancel_event: Set it to abandon the call.

        Returns:
            {"carbonImpact", "category", "details"} or None if unavailable.
        """
        try:
            return self._attempt(description, timeout, cancel_event)
        except EstimatorUnavailable as e:
            if e.reason == UnavailableReason.NO_CREDENTIAL:
                logger.info("No GEMINI_API_KEY — using rule-based estimate")
            else:
                logger.warning("Gemini estimate unavailable (%s) — falling back to rules", e)
            return None
        except Exception as e:
            logger.warning("Gemini estimate failed: %s — falling back to rules", e, exc_info=True)
            return None

    def _attempt(self, description: str, timeout: Optional[float] = None,
                 cancel_event: Optional[threading.Event] = None) -> dict:
        """Single attempt. Raises EstimatorUnavailable on any failure."""
        if not self.configured:
            raise EstimatorUnavailable(UnavailableReason.NO_CREDENTIAL)
        if cancel_event is not None and cancel_event.is_set():
            raise EstimatorUnavailable(UnavailableReason.CANCELLED, "cancelled before request")

        if timeout is None:
            timeout = self.timeout
        prompt = self._build_prompt(description)
        response_text = self._call_with_deadline(prompt, timeout, cancel_event)
        estimate = self._parse_response(response_text)
        estimate["details"] = "AI Analysis: %s" % estimate["details"]
        return estimate

    def _build_prompt(self, description: str) -> str:
        """Build the estimation prompt for one activity."""
        return """Analyze the following activity and calculate its carbon footprint. Return ONLY a JSON object with exactly these fields:
{
  "carbonImpact": number (in kg CO2),
  "category": "transportation" | "food" | "energy" | "shopping" | "other",
  "details": "brief explanation of the calculation"
}

Activity: %s

Guidelines:
- For transportation: Consider distance, vehicle type, fuel efficiency
- For food: Consider type of food, production methods, transportation
- For energy: Consider energy source, duration, efficiency
- For shopping: Consider manufacturing, materials, lifecycle
- Use realistic carbon emission factors
- If unclear, make reasonable assumptions and explain them in details
- Return values in kg CO2 equivalent
- Be concise but informative in details
""" % json.dumps(description)

    def _call_with_deadline(self, prompt: str, timeout: float,
                            cancel_event: Optional[threading.Event]) -> str:
        """
        Run _call_gemini on its own worker thread, bounded by timeout and cancel_event.

        Each call gets a dedicated thread, so the deadline covers only this call
        and never time spent waiting behind other requests.
        """
        deadline = time.monotonic() + timeout
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="gemini")
        try:
            future = executor.submit(self._call_gemini, prompt, timeout)
            while True:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise EstimatorUnavailable(UnavailableReason.TIMEOUT, "no reply within %.1fs" % timeout)
                done, _ = wait([future], timeout=min(_POLL_SECONDS, remaining))
                if done:
                    break
                if cancel_event is not None and cancel_event.is_set():
                    raise EstimatorUnavailable(UnavailableReason.CANCELLED, "cancelled during request")
        finally:
            # An abandoned call finishes in the background; urlopen's timeout bounds it
            executor.shutdown(wait=False)
        if cancel_event is not None and cancel_event.is_set():
            raise EstimatorUnavailable(UnavailableReason.CANCELLED, "cancelled during request")
        return future.result()

    def _call_gemini(self, prompt: str, timeout: float) -> str:
        """Call Gemini and return the reply text. Raises EstimatorUnavailable."""
        url = "%s/models/%s:generateContent?key=%s" % (
            self.api_base, urllib.parse.quote(self.model), urllib.parse.quote(self.api_key))

        payload = json.dumps({
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": GENERATION_CONFIG,
        }).encode("utf-8")

        req = urllib.request.Request(
            url,
            data=payload,
            headers={"Content-Type": "application/json"},
            method="POST",
        )

        try:
            with urllib.request.urlopen(req, timeout=timeout) as response:
                body = response.read()
        except urllib.error.HTTPError as e:
            raise EstimatorUnavailable(UnavailableReason.HTTP_STATUS, "HTTP %s %s" % (e.code, e.reason))
        except urllib.error.URLError as e:
            if isinstance(e.reason, (socket.timeout, TimeoutError)):
                raise EstimatorUnavailable(UnavailableReason.TIMEOUT, str(e.reason))
            raise EstimatorUnavailable(UnavailableReason.NETWORK, str(e.reason))
        except (socket.timeout, TimeoutError) as e:
            raise EstimatorUnavailable(UnavailableReason.TIMEOUT, str(e))
        except OSError as e:
            raise EstimatorUnavailable(UnavailableReason.NETWORK, str(e))

        try:
            result = json.loads(body)
            return result["candidates"][0]["content"]["parts"][0]["text"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise EstimatorUnavailable(UnavailableReason.MALFORMED_RESPONSE, "unexpected reply envelope: %s" % e)

    def _parse_response(self, response_text: str) -> dict:
        """Find, parse and validate the estimate JSON in Gemini's reply."""
        block = extract_json_object(response_text)
        if block is None:
            raise EstimatorUnavailable(UnavailableReason.NO_JSON, "no JSON object in reply")
        try:
            data = json.loads(block)
        except json.JSONDecodeError as e:
            raise EstimatorUnavailable(UnavailableReason.INVALID_JSON, str(e))
        return validate_estimate(data)
