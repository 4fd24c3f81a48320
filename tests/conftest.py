"""Shared fakes for screener tests (no network, no real PDFs)."""

import json
import threading
import time

import pytest

from sentra.contexts.screening.prompts import load_prompts
from sentra.utils.llm import LLMResponse
from sentra.utils.pdf_processing import InsufficientTextError, meaningful_char_count

RESUME_TEXT = (
    "Jane Doe\nSenior Software Engineer\n"
    + "Built distributed payment systems in Python and Go for eight years. " * 4
)

CANDIDATE_ID = "0f8fad5b-d9cb-469f-a165-70867728950e"
APPLICATION_ID = "7c9e6679-7425-40de-944b-e07fc1f90ae7"
IDENTIFIED_FILENAME = f"Jane_Doe__{CANDIDATE_ID}__{APPLICATION_ID}.pdf"


class FakeProvider:
    """
    Scripted LLM provider.

    Responses are given per stage ("basic_fit", "name", "exceeds", "elite") as
    a string, a dict (serialized to JSON), an Exception to raise, a callable
    taking the user prompt and returning one of those, or a list of those
    consumed in order (the last one repeats).
    """

    def __init__(self, responses=None, delay: float = 0.0):
        self.responses = dict(responses or {})
        self.delay = delay
        self.calls = []
        self._prompts = load_prompts()
        self._lock = threading.Lock()
        self._in_flight = 0
        self.peak_in_flight = 0

    def _stage_for(self, system_prompt: str) -> str:
        for stage, prompt in self._prompts.system_prompts.items():
            if prompt == system_prompt:
                return stage
        raise AssertionError("Unknown system prompt")

    def _next_response(self, stage: str):
        scripted = self.responses.get(stage)
        if isinstance(scripted, list):
            return scripted.pop(0) if len(scripted) > 1 else scripted[0]
        return scripted

    def generate(self, system_prompt: str, user_prompt: str) -> LLMResponse:
        stage = self._stage_for(system_prompt)
        with self._lock:
            self.calls.append(stage)
            self._in_flight += 1
            self.peak_in_flight = max(self.peak_in_flight, self._in_flight)
        try:
            if self.delay:
                time.sleep(self.delay)
            with self._lock:
                response = self._next_response(stage)
        finally:
            with self._lock:
                self._in_flight -= 1

        if callable(response):
            response = response(user_prompt)
        if isinstance(response, Exception):
            raise response
        if response is None:
            raise AssertionError(f"No scripted response for stage {stage}")
        if isinstance(response, dict):
            response = json.dumps(response)
        return LLMResponse(content=response, model="fake", input_tokens=0, output_tokens=0)


class FakeExtractor:
    """Treats file bytes as UTF-8 text; enforces the same threshold as PDFTextExtractor."""

    def __init__(self, min_chars: int = 100):
        self.min_chars = min_chars

    def extract(self, data: bytes) -> str:
        text = data.decode("utf-8")
        count = meaningful_char_count(text)
        if count < self.min_chars:
            raise InsufficientTextError(count, self.min_chars)
        return text


def passing_responses(tier: str = "passed") -> dict:
    """Scripted responses that end at the given tier."""
    return {
        "basic_fit": {"label": "passed", "reason": "Meets the bar."},
        "name": {"name": "Jane Doe"},
        "exceeds": {"exceeds": tier in ("exceeds", "elite"), "reason": "Strong record."},
        "elite": {"elite": tier == "elite", "reason": "Exceptional."},
    }


@pytest.fixture
def resume_dir(tmp_path):
    path = tmp_path / "resumes"
    path.mkdir()
    return path


@pytest.fixture
def write_resume(resume_dir):
    """Write a fake resume (plain text in a .pdf file) into resume_dir."""

    def _write(filename: str, text: str = RESUME_TEXT):
        path = resume_dir / filename
        path.write_text(text, encoding="utf-8")
        return path

    return _write
