"""
Job event logging utilities for IMAGINATOR.

Appends one JSON object per line to a job event log so the life of every
render job (enqueued, started, completed, failed) can be followed across
worker restarts. This is separate from the loguru session log, which is for
human-readable diagnostics.

Usage:
    from imaginator.utils.event_logging import log_job_event, get_recent_events

    log_job_event(
        events_file,
        event_type="render_completed",
        job_name="0cc175b9c0f1b6a831c399e269772661.png",
        source="worker",
        elapsed_s=0.42,
    )

    failures = get_recent_events(events_file, 20, event_type="render_failed")

Event logging is disabled when events_file is None.
"""

import json
import os
import threading
from pathlib import Path
from typing import Optional, Union

from dotenv import load_dotenv

from imaginator.utils.timestamp import now_exact

load_dotenv()
EVENTS_FILE = os.getenv("IMAGINATOR_EVENTS_FILE") or None

JOB_EVENTS = {
    "enqueued",
    "render_started",
    "render_completed",
    "render_failed",
    "render_skipped",
    "worker_started",
    "worker_stopped",
}

_write_lock = threading.Lock()


def log_job_event(
    events_file: Optional[Union[str, Path]],
    event_type: str,
    job_name: Optional[str],
    source: str,
    **extra_fields,
) -> None:
    """
    Append an event to the job event log.

    Args:
        events_file: Path of the JSON Lines log (None disables logging)
        event_type: One of JOB_EVENTS
        job_name: Output file name of the job (None for worker-level events)
        source: Event source (e.g., "worker", "queue", "cli")
        **extra_fields: Additional event-specific fields

    Raises:
        ValueError: If event_type is not a known job event
    """
    if events_file is None:
        return
    if event_type not in JOB_EVENTS:
        raise ValueError(f"Unknown job event type: {event_type}")

    events_file = Path(events_file)
    event = {
        "timestamp": now_exact(),
        "event_type": event_type,
        "job_name": job_name,
        "source": source,
        **extra_fields,
    }

    with _write_lock:
        events_file.parent.mkdir(parents=True, exist_ok=True)
        with open(events_file, "a", encoding="utf-8") as f:
            f.write(json.dumps(event, default=str) + "\n")


def get_recent_events(
    events_file: Union[str, Path],
    n: int = 10,
    job_name: Optional[str] = None,
    event_type: Optional[str] = None,
) -> list[dict]:
    """
    Get the last n events from the job event log, optionally filtered.

    Args:
        events_file: Path of the JSON Lines log
        n: Number of recent events to return (default: 10)
        job_name: Filter to only events for this job (optional)
        event_type: Filter to only events of this type (optional)

    Returns:
        List of event dicts (most recent last)
    """
    events_file = Path(events_file)
    if not events_file.exists():
        return []

    events = []
    with open(events_file, "r", encoding="utf-8") as f:
        for line in f:
            try:
                events.append(json.loads(line.strip()))
            except json.JSONDecodeError:
                # Skip malformed lines
                continue

    if job_name:
        events = [e for e in events if e.get("job_name") == job_name]

    if event_type:
        events = [e for e in events if e.get("event_type") == event_type]

    return events[-n:] if len(events) > n else events
