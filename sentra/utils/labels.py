"""
Status label vocabulary for the screening pipeline.

Manifest labels follow a small state machine:

    pending -> in_progress -> {passed | exceeds | elite | rejected}

with an error edge back to ``pending`` and a ``failed`` terminal state once a
file has exhausted its retry budget. Humans can override any label with a
free-text review (``reviewed#<comment>``).
"""

STATUS_PENDING = "pending"
STATUS_IN_PROGRESS = "in_progress"
STATUS_PASSED = "passed"
STATUS_EXCEEDS = "exceeds"
STATUS_ELITE = "elite"
STATUS_REJECTED = "rejected"
STATUS_FAILED = "failed"
STATUS_REVIEWED_PREFIX = "reviewed#"

MAX_REVIEW_LENGTH = 255

IN_FLIGHT_STATUSES = frozenset({STATUS_PENDING, STATUS_IN_PROGRESS})
TIER_STATUSES = frozenset({STATUS_REJECTED, STATUS_PASSED, STATUS_EXCEEDS, STATUS_ELITE})
PASSING_STATUSES = frozenset({STATUS_PASSED, STATUS_EXCEEDS, STATUS_ELITE})
TERMINAL_STATUSES = TIER_STATUSES | {STATUS_FAILED}
KNOWN_STATUSES = IN_FLIGHT_STATUSES | TERMINAL_STATUSES

# Higher = more selective
TIER_ORDER = {
    STATUS_REJECTED: 0,
    STATUS_PASSED: 1,
    STATUS_EXCEEDS: 2,
    STATUS_ELITE: 3,
}

# Display names used in logs and the CLI
TIER_DISPLAY = {
    STATUS_REJECTED: "Rejected",
    STATUS_PASSED: "Passed",
    STATUS_EXCEEDS: "Very Good",
    STATUS_ELITE: "Perfect",
}


def is_review_label(label: str) -> bool:
    return label.startswith(STATUS_REVIEWED_PREFIX)


def is_valid_label(label: str) -> bool:
    """Check a label against the closed vocabulary (including review labels)."""
    if not label:
        return False
    if is_review_label(label):
        comment = label[len(STATUS_REVIEWED_PREFIX):]
        return (
            0 < len(comment) <= MAX_REVIEW_LENGTH
            and "\n" not in comment
            and "\r" not in comment
        )
    return label in KNOWN_STATUSES


def is_in_flight(label: str | None) -> bool:
    """True for labels that still need (or are receiving) analysis."""
    return label is None or label in IN_FLIGHT_STATUSES


def is_terminal(label: str | None) -> bool:
    """True for labels the analysis queue must never re-admit."""
    return label is not None and not is_in_flight(label)


def make_review_label(comment: str) -> str:
    """
    Build a ``reviewed#<comment>`` label from free text.

    Newlines are collapsed so the label stays on a single manifest row.

    Raises:
        ValueError: If the comment is empty or longer than MAX_REVIEW_LENGTH
    """
    cleaned = " ".join(comment.replace("\r", " ").replace("\n", " ").split())
    if not cleaned:
        raise ValueError("Review is required")
    if len(cleaned) > MAX_REVIEW_LENGTH:
        raise ValueError(f"Review must be <= {MAX_REVIEW_LENGTH} characters")
    return f"{STATUS_REVIEWED_PREFIX}{cleaned}"
