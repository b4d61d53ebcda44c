"""
Historical transition dataset (CSV) loading and saving.

File format, one transition per row:

    state,action,reward,next_state,done
    "[0.6, 0.6, 0.6]",1,1.2,"[0.6, 0.7, 0.6]",false

Mastery vectors are JSON arrays. The done column is optional; when missing
or empty it is derived from next_state and the done threshold.

Malformed rows are skipped with a warning so that a partially bad file
still yields every usable transition.
"""

from __future__ import annotations

import csv
import json
import math
from pathlib import Path
from typing import Iterable

from loguru import logger

from src.core.exceptions import MalformedDatasetRecordError
from src.environment.mastery_env import MasteryState, Transition

FIELDNAMES = ["state", "action", "reward", "next_state", "done"]
REQUIRED_FIELDS = ("state", "action", "reward", "next_state")

_TRUE = {"true", "1", "yes", "t"}
_FALSE = {"false", "0", "no", "f"}


def _parse_vector(raw: str | None, field: str, num_concepts: int | None, line: int) -> list[float]:
    try:
        values = json.loads(raw or "")
    except json.JSONDecodeError as e:
        raise MalformedDatasetRecordError(f"{field} is not a JSON array: {e}", line) from e

    if not isinstance(values, list) or not values:
        raise MalformedDatasetRecordError(f"{field} must be a non-empty array", line)
    if num_concepts is not None and len(values) != num_concepts:
        raise MalformedDatasetRecordError(
            f"{field} has {len(values)} entries, expected {num_concepts}", line
        )

    vector = []
    for value in values:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise MalformedDatasetRecordError(f"{field} contains non-numeric value {value!r}", line)
        if not 0.0 <= value <= 1.0:
            raise MalformedDatasetRecordError(f"{field} value {value} outside [0, 1]", line)
        vector.append(float(value))
    return vector


def _parse_done(raw: str | None, line: int) -> bool | None:
    if raw is None or raw.strip() == "":
        return None
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise MalformedDatasetRecordError(f"done must be a boolean, got {raw!r}", line)


def parse_transition_record(
    record: dict[str, str | None],
    num_concepts: int | None = None,
    done_threshold: float = 0.8,
    line_number: int | None = None,
) -> Transition:
    """
    Parse one CSV record into a Transition.

    Raises:
        MalformedDatasetRecordError: If any field is missing or invalid
    """
    missing = [name for name in REQUIRED_FIELDS if not (record.get(name) or "").strip()]
    if missing:
        raise MalformedDatasetRecordError(f"missing field(s): {', '.join(missing)}", line_number)

    state = _parse_vector(record["state"], "state", num_concepts, line_number)
    next_state = _parse_vector(record["next_state"], "next_state", len(state), line_number)

    try:
        action = int(record["action"].strip())
    except ValueError as e:
        raise MalformedDatasetRecordError(f"action is not an integer: {record['action']!r}", line_number) from e
    if not 0 <= action < len(state):
        raise MalformedDatasetRecordError(
            f"action {action} outside [0, {len(state)})", line_number
        )

    try:
        reward = float(record["reward"])
    except ValueError as e:
        raise MalformedDatasetRecordError(f"reward is not a number: {record['reward']!r}", line_number) from e
    if not math.isfinite(reward):
        raise MalformedDatasetRecordError(f"reward is not finite: {reward}", line_number)

    done = _parse_done(record.get("done"), line_number)

    return Transition(
        state=MasteryState.from_values(state, done_threshold=done_threshold),
        action=action,
        reward=reward,
        next_state=MasteryState.from_values(next_state, done=done, done_threshold=done_threshold),
    )


def load_transitions_from_csv(
    path: str | Path,
    num_concepts: int | None = None,
    done_threshold: float = 0.8,
) -> list[Transition]:
    """
    Load a historical transition dataset.

    Args:
        path: CSV file path
        num_concepts: Expected vector length (None = accept any consistent length)
        done_threshold: Used to derive done when the column is absent

    Returns:
        Valid transitions in file order
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Dataset not found: {path}")

    transitions: list[Transition] = []
    skipped = 0
    # Undecodable bytes become U+FFFD so the record fails parsing instead of the read
    with open(path, "r", encoding="utf-8", errors="replace", newline="") as f:
        reader = csv.DictReader(f)
        while True:
            try:
                record = next(reader)
            except StopIteration:
                break
            except csv.Error as e:
                skipped += 1
                logger.warning(f"Skipping unreadable record in {path.name} (line {reader.line_num}): {e}")
                continue

            try:
                transitions.append(
                    parse_transition_record(record, num_concepts, done_threshold, reader.line_num)
                )
            except MalformedDatasetRecordError as e:
                skipped += 1
                logger.warning(f"Skipping malformed record in {path.name}: {e}")

    logger.info(f"Loaded {len(transitions)} transitions from {path} ({skipped} skipped)")
    return transitions


def save_transitions_to_csv(transitions: Iterable[Transition], path: str | Path) -> Path:
    """Write transitions in the format read by load_transitions_from_csv."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    count = 0
    with open(path, "w", encoding="utf-8", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=FIELDNAMES)
        writer.writeheader()
        for t in transitions:
            writer.writerow(
                {
                    "state": json.dumps(t.state.as_list()),
                    "action": t.action,
                    "reward": t.reward,
                    "next_state": json.dumps(t.next_state.as_list()),
                    "done": "true" if t.done else "false",
                }
            )
            count += 1

    logger.info(f"Wrote {count} transitions to {path}")
    return path


def dataset_loader_for(path: str | Path, done_threshold: float = 0.8):
    """Return a loader callable(num_concepts) -> transitions for the orchestrator."""

    def _load(num_concepts: int) -> list[Transition]:
        return load_transitions_from_csv(path, num_concepts=num_concepts, done_threshold=done_threshold)

    return _load
