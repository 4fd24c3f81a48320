"""
Pipeline event logging utilities (Tier 2 logging).

Appends pipeline events to a JSON Lines file so label history survives
restarts and can be inspected or replayed after the fact. The manifest holds
only the latest label; this log holds every transition.

For detailed within-context logging (Tier 1), use sentra.utils.logger instead.

Usage:
    from sentra.utils.event_logging import PipelineEventLog

    events = PipelineEventLog(Path("outs/logs/pipeline_events.log"))
    events.log_status_change(
        filename="Jane_Doe__....pdf",
        old_status="pending",
        new_status="in_progress",
        source="queue",
    )
"""

import json
from pathlib import Path
from typing import Optional

from sentra.utils.timestamp import now_exact

STATUS_CHANGE = "status_change"


class PipelineEventLog:
    """Append-only JSON Lines event log."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def log_event(self, event_type: str, filename: str, source: str, **extra_fields) -> dict:
        """
        Append an event to the pipeline log.

        Args:
            event_type: Type of event (e.g., "status_change", "discovered", "rejected")
            filename: Resume filename the event concerns
            source: Event source (e.g., "watcher", "queue", "reconciler", "cli")
            **extra_fields: Additional event-specific fields

        Returns:
            The event dict as written
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)

        event = {
            "timestamp": now_exact(),
            "event_type": event_type,
            "filename": filename,
            "source": source,
            **extra_fields,
        }

        with open(self.path, "a", encoding="utf-8") as f:
            f.write(json.dumps(event) + "\n")

        return event

    def log_status_change(
        self,
        filename: str,
        old_status: Optional[str],
        new_status: str,
        source: str,
        **extra_fields,
    ) -> dict:
        """Log a manifest label transition. Does not touch the manifest."""
        return self.log_event(
            event_type=STATUS_CHANGE,
            filename=filename,
            source=source,
            old_status=old_status,
            new_status=new_status,
            **extra_fields,
        )

    def read_events(self) -> list[dict]:
        """Read every well-formed event, oldest first."""
        if not self.path.exists():
            return []

        events = []
        with open(self.path, "r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    events.append(json.loads(line))
                except json.JSONDecodeError:
                    # Skip malformed lines
                    continue
        return events

    def recent(
        self, n: int = 10, filename: Optional[str] = None, event_type: Optional[str] = None
    ) -> list[dict]:
        """
        Get the last n events, optionally filtered.

        Args:
            n: Number of recent events to return
            filename: Only events for this resume file
            event_type: Only events of this type

        Returns:
            List of event dicts (most recent last)
        """
        events = self.read_events()

        if filename:
            events = [e for e in events if e.get("filename") == filename]
        if event_type:
            events = [e for e in events if e.get("event_type") == event_type]

        if n <= 0:
            return []
        return events[-n:]

    def label_history(self, filename: str) -> list[str]:
        """Sequence of labels a file has moved through, oldest first."""
        return [
            e["new_status"]
            for e in self.read_events()
            if e.get("event_type") == STATUS_CHANGE and e.get("filename") == filename
        ]
