"""
Verdict Interpreter

Asks the verification model whether submitted evidence proves a habit was
done, and turns its free-text reply into a Verdict.

HabitVerifier.verify() NEVER raises. Every failure (transport, auth, a
reply that isn't the JSON we asked for) becomes a rejected Verdict with an
explanation the user can act on, and a `failure_kind` for operators:

    configuration      needs admin action (bad/missing API key)
    malformed_request  resubmit different evidence
    overloaded         transient, retry shortly
    rate_limited       transient, wait a bit
    unexpected         anything else
    no_structured_answer / unparsable / incomplete
                       the model replied, but not in the agreed shape

The model sits behind VerificationOracle so tests can feed canned replies.
"""
import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

import anthropic
from anthropic import Anthropic

from core.config import settings
from services.proof_normalizer import EvidenceError, PreparedImage, prepare_image

logger = logging.getLogger(__name__)


CONFIDENCE_LEVELS = ("high", "medium", "low")
DEFAULT_CONFIDENCE = "medium"

# XP for a verified attempt, by confidence. Rejected attempts earn nothing.
CONFIDENCE_XP: Dict[str, int] = {
    "high": 50,
    "medium": 35,
    "low": 20,
}

DEFAULT_VERIFIED_EXPLANATION = "Habit verified!"
DEFAULT_REJECTED_EXPLANATION = "Could not verify this time."


class OracleFailureKind(str, Enum):
    CONFIGURATION = "configuration"
    MALFORMED_REQUEST = "malformed_request"
    OVERLOADED = "overloaded"
    RATE_LIMITED = "rate_limited"
    UNEXPECTED = "unexpected"
    NO_STRUCTURED_ANSWER = "no_structured_answer"
    UNPARSABLE = "unparsable"
    INCOMPLETE = "incomplete"


FAILURE_EXPLANATIONS: Dict[OracleFailureKind, str] = {
    OracleFailureKind.CONFIGURATION: "Server configuration error (invalid API key). Contact the admin.",
    OracleFailureKind.MALFORMED_REQUEST: "Could not process the image. Try a different format or smaller size.",
    OracleFailureKind.OVERLOADED: "AI service is temporarily busy. Please try again in a moment.",
    OracleFailureKind.RATE_LIMITED: "Too many requests right now. Please wait a moment and try again.",
    OracleFailureKind.UNEXPECTED: "Verification failed unexpectedly. Please try again.",
    OracleFailureKind.NO_STRUCTURED_ANSWER: "AI gave an unexpected response. Please try again.",
    OracleFailureKind.UNPARSABLE: "AI response could not be parsed. Please try again.",
    OracleFailureKind.INCOMPLETE: "AI gave an incomplete response. Please try again.",
}

AUTH_STATUS_CODES = {401, 403}
BAD_REQUEST_STATUS_CODES = {400, 413, 422}
OVERLOADED_STATUS_CODES = {500, 502, 503, 504, 529}
RATE_LIMIT_STATUS_CODE = 429


@dataclass(frozen=True)
class Verdict:
    verified: bool
    explanation: str
    xp_earned: int = 0
    confidence: Optional[str] = None
    failure_kind: Optional[OracleFailureKind] = None

    @classmethod
    def safe_fail(cls, kind: OracleFailureKind) -> "Verdict":
        return cls(verified=False, explanation=FAILURE_EXPLANATIONS[kind], xp_earned=0, failure_kind=kind)


@dataclass(frozen=True)
class EvidenceBundle:
    """Everything the model sees for one attempt."""
    habit_name: str
    habit_description: Optional[str]
    proof_instructions: str
    image: Optional[PreparedImage] = None
    proof_note: Optional[str] = None
    # Set when an image was uploaded but could not be normalized
    image_error: Optional[EvidenceError] = None

    @property
    def has_image(self) -> bool:
        return self.image is not None


def build_evidence_bundle(
    habit_name: str,
    habit_description: Optional[str],
    proof_instructions: str,
    image_path: Optional[str] = None,
    proof_note: Optional[str] = None,
) -> EvidenceBundle:
    """
    Normalize the image (if any) and assemble the evidence.

    A failed image does not abort the attempt: the note gains a line telling
    the model an image was sent but couldn't be used, so its explanation
    stays honest about what it actually saw.
    """
    image = None
    image_error = None
    if image_path:
        try:
            image = prepare_image(image_path)
        except EvidenceError as e:
            logger.warning(
                f"Image prep failed, proceeding without image: {e}",
                extra={"extra_fields": {"evidence_error": type(e).__name__}},
            )
            image_error = e
            proof_note = (proof_note or "") + f"\n[User uploaded an image but it could not be processed: {e}]"

    return EvidenceBundle(
        habit_name=habit_name,
        habit_description=habit_description,
        proof_instructions=proof_instructions,
        image=image,
        proof_note=proof_note,
        image_error=image_error,
    )


def build_verification_prompt(bundle: EvidenceBundle) -> str:
    provided = "USER PROVIDED: An image (shown above)" if bundle.has_image else "USER PROVIDED: No image"
    note_line = f"USER NOTE: {bundle.proof_note}" if bundle.proof_note else ""

    return f"""You are a habit verification assistant. Be encouraging but honest.

HABIT: {bundle.habit_name}
DESCRIPTION: {bundle.habit_description or 'None provided'}
ACCEPTED PROOF: {bundle.proof_instructions}
{provided}
{note_line}

Rules:
- If there is a clear image showing evidence of the habit, verify it (high confidence)
- If the image is vague but plausible, verify it (medium or low confidence)
- If there's only a note and it sounds reasonable, verify it (low confidence)
- If there's no real evidence at all, do NOT verify
- Keep your explanation friendly and under 2 sentences

Respond with ONLY this JSON (no markdown, no code fences, no extra text):
{{"verified":true,"explanation":"Your explanation here.","confidence":"high"}}

confidence = "high", "medium", or "low"
"""


# ---------------------------------------------------------------------------
# Oracle port
# ---------------------------------------------------------------------------

class OracleNotConfigured(Exception):
    """No credentials for the verification model."""


class VerificationOracle(ABC):
    """Sends one evidence bundle to a judge and returns its raw reply."""

    @abstractmethod
    def interpret(self, bundle: EvidenceBundle) -> str:
        raise NotImplementedError


class AnthropicOracle(VerificationOracle):
    """Anthropic Messages API adapter. Exactly one request per call, no retries."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        timeout: Optional[float] = None,
        client: Optional[Anthropic] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.ANTHROPIC_API_KEY
        self.model = model or settings.VERIFIER_MODEL
        self.max_tokens = max_tokens or settings.VERIFIER_MAX_TOKENS
        self.timeout = timeout or settings.VERIFIER_TIMEOUT_S
        self._client = client

    @property
    def client(self) -> Anthropic:
        if self._client is None:
            if not self.api_key:
                raise OracleNotConfigured("ANTHROPIC_API_KEY is not set")
            self._client = Anthropic(api_key=self.api_key, max_retries=0, timeout=self.timeout)
        return self._client

    def build_content(self, bundle: EvidenceBundle) -> List[dict]:
        content: List[dict] = []
        if bundle.image is not None:
            content.append({
                "type": "image",
                "source": {
                    "type": "base64",
                    "media_type": bundle.image.media_type,
                    "data": bundle.image.as_base64(),
                },
            })
        content.append({"type": "text", "text": build_verification_prompt(bundle)})
        return content

    def interpret(self, bundle: EvidenceBundle) -> str:
        response = self.client.messages.create(
            model=self.model,
            max_tokens=self.max_tokens,
            messages=[{"role": "user", "content": self.build_content(bundle)}],
        )
        text = ""
        for block in response.content:
            if hasattr(block, "text"):
                text += block.text
        return text.strip()


# ---------------------------------------------------------------------------
# Reply parsing
# ---------------------------------------------------------------------------

_LEADING_FENCE = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_TRAILING_FENCE = re.compile(r"\s*```$")


def strip_code_fences(text: str) -> str:
    cleaned = _LEADING_FENCE.sub("", text.strip())
    return _TRAILING_FENCE.sub("", cleaned).strip()


def _balanced_end(text: str, start: int) -> Optional[int]:
    """Index just past the brace matching text[start], or None."""
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
        elif ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i + 1
    return None


def find_json_object(text: str) -> Optional[str]:
    """First balanced {...} region in `text`, ignoring braces inside strings."""
    start = text.find("{")
    while start != -1:
        end = _balanced_end(text, start)
        if end is not None:
            return text[start:end]
        start = text.find("{", start + 1)
    return None


def reward_for(verified: bool, confidence: str) -> int:
    if not verified:
        return 0
    return CONFIDENCE_XP.get(confidence, CONFIDENCE_XP[DEFAULT_CONFIDENCE])


def parse_oracle_response(raw_text: Optional[str]) -> Verdict:
    """
    Turn the model's reply into a Verdict. Never raises.
    """
    cleaned = strip_code_fences(raw_text or "")

    candidate = find_json_object(cleaned)
    if candidate is None:
        logger.error(f"No JSON found in AI response: {raw_text!r}")
        return Verdict.safe_fail(OracleFailureKind.NO_STRUCTURED_ANSWER)

    try:
        result = json.loads(candidate)
    except ValueError as e:
        logger.error(f"JSON parse failed: {e}")
        return Verdict.safe_fail(OracleFailureKind.UNPARSABLE)

    verified = result.get("verified")
    # bool only: "true" and 1 are not answers
    if not isinstance(verified, bool):
        logger.error(f"AI response missing verified field: {result!r}")
        return Verdict.safe_fail(OracleFailureKind.INCOMPLETE)

    confidence = result.get("confidence")
    if confidence not in CONFIDENCE_LEVELS:
        confidence = DEFAULT_CONFIDENCE

    explanation = result.get("explanation")
    if not explanation:
        explanation = DEFAULT_VERIFIED_EXPLANATION if verified else DEFAULT_REJECTED_EXPLANATION
    elif not isinstance(explanation, str):
        explanation = str(explanation)

    return Verdict(
        verified=verified,
        explanation=explanation,
        xp_earned=reward_for(verified, confidence),
        confidence=confidence,
    )


def classify_oracle_error(error: Exception) -> OracleFailureKind:
    if isinstance(error, OracleNotConfigured):
        return OracleFailureKind.CONFIGURATION
    if isinstance(error, anthropic.APIConnectionError):
        # Includes APITimeoutError
        return OracleFailureKind.OVERLOADED
    if isinstance(error, anthropic.APIStatusError):
        status_code = error.status_code
        if status_code in AUTH_STATUS_CODES:
            return OracleFailureKind.CONFIGURATION
        if status_code == RATE_LIMIT_STATUS_CODE:
            return OracleFailureKind.RATE_LIMITED
        if status_code in BAD_REQUEST_STATUS_CODES:
            return OracleFailureKind.MALFORMED_REQUEST
        if status_code in OVERLOADED_STATUS_CODES:
            return OracleFailureKind.OVERLOADED
    return OracleFailureKind.UNEXPECTED


class HabitVerifier:
    """
    Gets one verdict per attempt. verify() never raises.
    """

    def __init__(self, oracle: VerificationOracle):
        self.oracle = oracle

    def verify(self, bundle: EvidenceBundle) -> Verdict:
        try:
            raw_text = self.oracle.interpret(bundle)
        except Exception as e:
            kind = classify_oracle_error(e)
            log = logger.warning if kind in (OracleFailureKind.OVERLOADED, OracleFailureKind.RATE_LIMITED) else logger.error
            log(
                f"Verification oracle call failed ({kind.value}): {e}",
                exc_info=kind == OracleFailureKind.UNEXPECTED,
                extra={
                    "extra_fields": {
                        "failure_kind": kind.value,
                        "status_code": getattr(e, "status_code", None),
                        "error_type": type(e).__name__,
                        "habit": bundle.habit_name,
                    }
                },
            )
            return Verdict.safe_fail(kind)

        try:
            verdict = parse_oracle_response(raw_text)
        except Exception:
            logger.exception("Unexpected error while parsing verification reply")
            return Verdict.safe_fail(OracleFailureKind.UNEXPECTED)

        if verdict.failure_kind is not None:
            logger.warning(
                f"Verification reply rejected ({verdict.failure_kind.value})",
                extra={"extra_fields": {"failure_kind": verdict.failure_kind.value, "habit": bundle.habit_name}},
            )
        return verdict


_default_verifier: Optional[HabitVerifier] = None


def get_verifier() -> HabitVerifier:
    """FastAPI dependency; tests override it with a canned oracle."""
    global _default_verifier
    if _default_verifier is None:
        _default_verifier = HabitVerifier(AnthropicOracle())
    return _default_verifier
