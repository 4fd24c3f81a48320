"""Unit tests for the candidate identity codec."""

import pytest

from sentra.contexts.intake.identity import format_filename, parse_identity

CANDIDATE = "0f8fad5b-d9cb-469f-a165-70867728950e"
APPLICATION = "7c9e6679-7425-40de-944b-e07fc1f90ae7"


@pytest.mark.unit
def test_parse_identity():
    identity = parse_identity(f"Jane_Doe__{CANDIDATE}__{APPLICATION}.pdf")

    assert identity.candidate_id == CANDIDATE
    assert identity.application_id == APPLICATION
    assert identity.display_name == "Jane Doe"


@pytest.mark.unit
def test_parse_identity_case_insensitive():
    """Uppercase hex and extension are accepted; ids come back lowercased."""
    identity = parse_identity(f"X__{CANDIDATE.upper()}__{APPLICATION.upper()}.PDF")

    assert identity.candidate_id == CANDIDATE
    assert identity.application_id == APPLICATION


@pytest.mark.unit
def test_parse_identity_uses_basename():
    identity = parse_identity(f"/data/resumes/Jane__{CANDIDATE}__{APPLICATION}.pdf")
    assert identity.candidate_id == CANDIDATE


@pytest.mark.unit
@pytest.mark.parametrize(
    "filename",
    [
        "resume.pdf",
        f"Jane__{CANDIDATE}.pdf",
        f"Jane__{CANDIDATE}__not-a-uuid.pdf",
        f"Jane__{CANDIDATE}__{APPLICATION}.docx",
    ],
)
def test_parse_identity_none(filename):
    assert parse_identity(filename) is None


@pytest.mark.unit
def test_format_filename_is_parseable():
    filename = format_filename("Jane O'Neil", CANDIDATE, APPLICATION)

    assert filename == f"Jane_O_Neil__{CANDIDATE}__{APPLICATION}.pdf"
    assert parse_identity(filename).application_id == APPLICATION
