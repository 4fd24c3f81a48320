"""
Tiered resume classifier.

Runs a staged LLM decision procedure, each stage gated on the previous one:

    1. basic_fit  -> passed | rejected   (strict mode: a pass is re-checked once)
    2. name       -> best-effort display name ("Unknown" on any failure)
    3. exceeds    -> false: passed,  true: go to stage 4
    4. elite      -> false: exceeds, true: elite

Text below the meaningful-character threshold never reaches the LLM and is
rejected with reason tag ``scan_failed``.

The classifier holds no state; it is a function of (resume text, condition)
modulo LLM I/O. Provider calls are blocking and run in a worker thread.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Optional, Protocol

from sentra.contexts.screening.exceptions import ClassificationError
from sentra.contexts.screening.logger import _log_debug, _log_warning
from sentra.contexts.screening.prompts import (
    STAGE_BASIC_FIT,
    STAGE_ELITE,
    STAGE_EXCEEDS,
    STAGE_NAME,
    PromptSet,
    load_prompts,
    truncate_for_prompt,
)
from sentra.utils.labels import STATUS_ELITE, STATUS_EXCEEDS, STATUS_PASSED, STATUS_REJECTED
from sentra.utils.llm import LLMResponse, ParsedResponse, parse_json_object
from sentra.utils.pdf_processing import DEFAULT_MIN_TEXT_CHARS, meaningful_char_count

REASON_SCAN_FAILED = "scan_failed"
REASON_BAD_FIT = "bad_fit"

UNKNOWN_NAME = "Unknown"
DEFAULT_MAX_RESUME_CHARS = 20_000

# Stage -> (result key, allowed values); bool stages accept True/False only
STAGE_SCHEMAS = {
    STAGE_BASIC_FIT: ("label", (STATUS_PASSED, STATUS_REJECTED)),
    STAGE_EXCEEDS: ("exceeds", (True, False)),
    STAGE_ELITE: ("elite", (True, False)),
}


class TextGenerator(Protocol):
    """Anything with LLMProvider.generate's signature."""

    def generate(self, system_prompt: str, user_prompt: str) -> LLMResponse: ...


@dataclass(frozen=True)
class ClassificationDecision:
    """
    Result of one classifier run.

    Attributes:
        label: Tier label (rejected, passed, exceeds, elite)
        reason: Explanation from the deciding stage
        reason_tag: "scan_failed" or "bad_fit" for rejections, "" otherwise
        candidate_name: Extracted name for passing candidates
        llm_calls: Number of LLM requests made
    """

    label: str
    reason: str
    reason_tag: str = ""
    candidate_name: Optional[str] = None
    llm_calls: int = 0

    @property
    def is_scan_failure(self) -> bool:
        return self.reason_tag == REASON_SCAN_FAILED


@dataclass(frozen=True)
class StageResult:
    """Validated stage output, or the reason validation failed."""

    value: Any = None
    reason: str = ""
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def validate_stage_response(stage: str, parsed: ParsedResponse) -> StageResult:
    """
    Check a parsed LLM response against the stage's expected shape.

    Returns:
        StageResult with value/reason set, or error set when the response is
        unparsable, lacks the stage key, or holds a value outside the stage enum
    """
    if not parsed.ok:
        return StageResult(error=parsed.error)

    key, allowed = STAGE_SCHEMAS[stage]
    data = parsed.data
    if key not in data:
        return StageResult(error=f"Missing key '{key}' in {stage} response")

    value = data[key]
    # bool is an int subclass; require exact types for boolean stages
    if isinstance(allowed[0], bool):
        if not isinstance(value, bool):
            return StageResult(error=f"Expected boolean '{key}', got {value!r}")
    elif not isinstance(value, str) or value not in allowed:
        return StageResult(error=f"LLM returned invalid {key}: {value!r}")

    reason = data.get("reason")
    if not isinstance(reason, str) or not reason.strip():
        reason = "No reason provided."
    return StageResult(value=value, reason=reason.strip())


def scan_failed_decision(char_count: int, min_chars: int) -> ClassificationDecision:
    """Decision for resumes without enough extractable text."""
    return ClassificationDecision(
        label=STATUS_REJECTED,
        reason=(
            f"Insufficient extractable text ({char_count} chars, need {min_chars}); "
            "likely a scanned or image-only PDF."
        ),
        reason_tag=REASON_SCAN_FAILED,
    )


class TieredClassifier:
    """
    Three-stage LLM classifier.

    Args:
        provider: Object with generate(system_prompt, user_prompt) -> LLMResponse
        prompts: PromptSet (default: bundled prompts.yaml)
        strict_mode: Re-run Stage 1 on a pass; disagreement rejects
        tiering_enabled: Run Stage 2/3 after a pass
        min_text_chars: Meaningful characters required before any LLM call
        max_resume_chars: Resume text truncation limit
    """

    def __init__(
        self,
        provider: TextGenerator,
        prompts: Optional[PromptSet] = None,
        strict_mode: bool = False,
        tiering_enabled: bool = True,
        min_text_chars: int = DEFAULT_MIN_TEXT_CHARS,
        max_resume_chars: int = DEFAULT_MAX_RESUME_CHARS,
    ):
        self.provider = provider
        self.prompts = prompts or load_prompts()
        self.strict_mode = strict_mode
        self.tiering_enabled = tiering_enabled
        self.min_text_chars = min_text_chars
        self.max_resume_chars = max_resume_chars

    async def _ask(self, stage: str, user_prompt: str) -> tuple[str, ParsedResponse]:
        response = await asyncio.to_thread(
            self.provider.generate, self.prompts.system(stage), user_prompt
        )
        _log_debug(f"{stage}: {response.content[:200]!r}")
        return response.content, parse_json_object(response.content)

    async def _run_stage(self, stage: str, user_prompt: str) -> StageResult:
        content, parsed = await self._ask(stage, user_prompt)
        result = validate_stage_response(stage, parsed)
        if not result.ok:
            raise ClassificationError(result.error, stage=stage, raw_response=content)
        return result

    async def extract_name(self, resume_text: str) -> str:
        """Best-effort candidate name; returns "Unknown" on any failure."""
        user_prompt = self.prompts.user("Extract the candidate's name.", resume_text)
        try:
            _, parsed = await self._ask(STAGE_NAME, user_prompt)
        except Exception as e:
            _log_warning(f"Name extraction failed: {type(e).__name__}: {e}")
            return UNKNOWN_NAME

        if not parsed.ok:
            return UNKNOWN_NAME
        name = parsed.data.get("name")
        if not isinstance(name, str) or not name.strip():
            return UNKNOWN_NAME
        return " ".join(name.split())[:120]

    async def classify(self, resume_text: str, condition: str) -> ClassificationDecision:
        """
        Classify resume text against a condition.

        Raises:
            ClassificationError: If a gating stage returns an invalid response
        """
        char_count = meaningful_char_count(resume_text)
        if char_count < self.min_text_chars:
            return scan_failed_decision(char_count, self.min_text_chars)

        resume = truncate_for_prompt(resume_text, self.max_resume_chars)
        user_prompt = self.prompts.user(condition, resume)
        calls = 0

        # Stage 1: basic fit
        basic = await self._run_stage(STAGE_BASIC_FIT, user_prompt)
        calls += 1
        if basic.value == STATUS_REJECTED:
            return ClassificationDecision(
                STATUS_REJECTED, basic.reason, REASON_BAD_FIT, llm_calls=calls
            )

        if self.strict_mode:
            confirm = await self._run_stage(STAGE_BASIC_FIT, user_prompt)
            calls += 1
            if confirm.value != STATUS_PASSED:
                return ClassificationDecision(
                    STATUS_REJECTED,
                    f"Strict mode: second evaluation disagreed. {confirm.reason}",
                    REASON_BAD_FIT,
                    llm_calls=calls,
                )

        name = await self.extract_name(resume)
        calls += 1

        if not self.tiering_enabled:
            return ClassificationDecision(STATUS_PASSED, basic.reason, candidate_name=name, llm_calls=calls)

        # Stage 2: exceeds expectations
        exceeds = await self._run_stage(STAGE_EXCEEDS, user_prompt)
        calls += 1
        if not exceeds.value:
            return ClassificationDecision(STATUS_PASSED, basic.reason, candidate_name=name, llm_calls=calls)

        # Stage 3: elite
        elite = await self._run_stage(STAGE_ELITE, user_prompt)
        calls += 1
        if not elite.value:
            return ClassificationDecision(STATUS_EXCEEDS, exceeds.reason, candidate_name=name, llm_calls=calls)

        return ClassificationDecision(STATUS_ELITE, elite.reason, candidate_name=name, llm_calls=calls)
