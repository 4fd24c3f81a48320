"""Unit tests for the tiered classifier."""

import asyncio

import pytest

from conftest import RESUME_TEXT, FakeProvider, passing_responses
from sentra.contexts.screening.classifier import (
    REASON_BAD_FIT,
    REASON_SCAN_FAILED,
    TieredClassifier,
    validate_stage_response,
)
from sentra.contexts.screening.exceptions import ClassificationError
from sentra.contexts.screening.prompts import TRUNCATION_MARKER, load_prompts, truncate_for_prompt
from sentra.utils.llm import ParsedResponse

CONDITION = "5+ years of backend engineering"


def classify(provider, text=RESUME_TEXT, **kwargs):
    return asyncio.run(TieredClassifier(provider, **kwargs).classify(text, CONDITION))


@pytest.mark.unit
def test_scanned_text_makes_no_llm_calls():
    provider = FakeProvider()
    decision = classify(provider, text="   \n  a few words  \n")

    assert decision.label == "rejected"
    assert decision.reason_tag == REASON_SCAN_FAILED
    assert decision.is_scan_failure
    assert provider.calls == []


@pytest.mark.unit
def test_basic_fit_rejection_stops_pipeline():
    provider = FakeProvider({"basic_fit": {"label": "rejected", "reason": "Too junior."}})
    decision = classify(provider)

    assert decision.label == "rejected"
    assert decision.reason == "Too junior."
    assert decision.reason_tag == REASON_BAD_FIT
    assert provider.calls == ["basic_fit"]


@pytest.mark.unit
@pytest.mark.parametrize(
    "tier, expected_calls",
    [
        ("passed", ["basic_fit", "name", "exceeds"]),
        ("exceeds", ["basic_fit", "name", "exceeds", "elite"]),
        ("elite", ["basic_fit", "name", "exceeds", "elite"]),
    ],
)
def test_tier_gating(tier, expected_calls):
    """Each stage only runs when the previous one passed."""
    provider = FakeProvider(passing_responses(tier))
    decision = classify(provider)

    assert decision.label == tier
    assert decision.candidate_name == "Jane Doe"
    assert decision.reason_tag == ""
    assert provider.calls == expected_calls
    assert decision.llm_calls == len(expected_calls)


@pytest.mark.unit
def test_tiering_disabled_stops_after_basic_fit():
    provider = FakeProvider(passing_responses("elite"))
    decision = classify(provider, tiering_enabled=False)

    assert decision.label == "passed"
    assert provider.calls == ["basic_fit", "name"]


@pytest.mark.unit
def test_strict_mode_disagreement_rejects():
    responses = passing_responses("elite")
    responses["basic_fit"] = [
        {"label": "passed", "reason": "Looks good."},
        {"label": "rejected", "reason": "Missing Go."},
    ]
    provider = FakeProvider(responses)
    decision = classify(provider, strict_mode=True)

    assert decision.label == "rejected"
    assert decision.reason_tag == REASON_BAD_FIT
    assert "Missing Go." in decision.reason
    assert provider.calls == ["basic_fit", "basic_fit"]


@pytest.mark.unit
def test_strict_mode_agreement_continues():
    provider = FakeProvider(passing_responses("exceeds"))
    decision = classify(provider, strict_mode=True)

    assert decision.label == "exceeds"
    assert provider.calls[:3] == ["basic_fit", "basic_fit", "name"]


@pytest.mark.unit
def test_name_failure_yields_unknown():
    responses = passing_responses("passed")
    responses["name"] = RuntimeError("provider down")
    decision = classify(FakeProvider(responses))

    assert decision.label == "passed"
    assert decision.candidate_name == "Unknown"


@pytest.mark.unit
def test_fenced_response_is_accepted():
    responses = passing_responses("passed")
    responses["basic_fit"] = '```json\n{"label": "passed", "reason": "fine"}\n```'
    assert classify(FakeProvider(responses)).label == "passed"


@pytest.mark.unit
def test_invalid_label_raises_classification_error():
    provider = FakeProvider({"basic_fit": {"label": "maybe", "reason": "unsure"}})

    with pytest.raises(ClassificationError) as exc_info:
        classify(provider)

    assert exc_info.value.stage == "basic_fit"
    assert '"maybe"' in exc_info.value.raw_response


@pytest.mark.unit
def test_unparsable_response_raises():
    responses = passing_responses("elite")
    responses["exceeds"] = "I think they exceed expectations."

    with pytest.raises(ClassificationError):
        classify(FakeProvider(responses))


@pytest.mark.unit
def test_validate_stage_response_requires_bool():
    result = validate_stage_response("elite", ParsedResponse(data={"elite": "true", "reason": "x"}))
    assert not result.ok

    result = validate_stage_response("elite", ParsedResponse(data={"elite": True}))
    assert result.ok
    assert result.reason == "No reason provided."


@pytest.mark.unit
def test_long_resume_is_truncated():
    provider = FakeProvider({"basic_fit": {"label": "rejected", "reason": "no"}})
    recorded = []
    original = provider.generate

    def recording_generate(system_prompt, user_prompt):
        recorded.append(user_prompt)
        return original(system_prompt, user_prompt)

    provider.generate = recording_generate
    classify(provider, text="word " * 10_000, max_resume_chars=500)

    assert recorded[0].rstrip().endswith(TRUNCATION_MARKER.strip())
    assert CONDITION in recorded[0]


@pytest.mark.unit
def test_truncate_for_prompt_leaves_short_text():
    assert truncate_for_prompt("short", 100) == "short"


@pytest.mark.unit
def test_load_prompts_has_every_stage():
    prompts = load_prompts()
    for stage in ("basic_fit", "name", "exceeds", "elite"):
        assert prompts.system(stage)
    assert "Resume:" in prompts.user("cond", "text")


@pytest.mark.unit
def test_load_prompts_missing_stage(tmp_path):
    path = tmp_path / "prompts.yaml"
    path.write_text('user_template: "{condition} {resume}"\nstages:\n  basic_fit:\n    system: x\n')

    with pytest.raises(ValueError, match="missing system prompts"):
        load_prompts(path)
