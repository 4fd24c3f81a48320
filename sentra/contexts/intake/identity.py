"""
Candidate identity codec.

Resume files pulled from the ATS are named

    <DisplayName>__<candidateId>__<applicationId>.pdf

where both ids are UUIDs. Files that do not follow the convention have no
identity; ATS archival and stage sync are unavailable for them.
"""

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

_UUID = r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}"
FILENAME_PATTERN = re.compile(
    rf"^(?P<name>.*?)__(?P<candidate>{_UUID})__(?P<application>{_UUID})\.pdf$",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class CandidateIdentity:
    """ATS identifiers parsed from a resume filename."""

    candidate_id: str
    application_id: str
    display_name: str = ""


def parse_identity(filename: str) -> Optional[CandidateIdentity]:
    """
    Derive candidate identity from a resume filename.

    Only the basename is considered, so absolute paths are accepted.

    Examples:
        >>> parse_identity("Jane_Doe__0f8fad5b-d9cb-469f-a165-70867728950e__7c9e6679-7425-40de-944b-e07fc1f90ae7.pdf")
        CandidateIdentity(candidate_id='0f8fad5b-...', application_id='7c9e6679-...', display_name='Jane Doe')
        >>> parse_identity("resume.pdf") is None
        True
    """
    match = FILENAME_PATTERN.match(Path(filename).name)
    if not match:
        return None
    return CandidateIdentity(
        candidate_id=match.group("candidate").lower(),
        application_id=match.group("application").lower(),
        display_name=match.group("name").replace("_", " ").strip(),
    )


def format_filename(display_name: str, candidate_id: str, application_id: str) -> str:
    """Build a convention-following filename (inverse of parse_identity)."""
    safe_name = re.sub(r"[^\w\-]+", "_", display_name.strip()).strip("_") or "Unknown"
    return f"{safe_name}__{candidate_id}__{application_id}.pdf"
