"""Parser for the OUTPUT_START/END sentinel protocol.

A container prints free-form text on stdout. Its structured result is either
wrapped between the two sentinel markers or printed as the last non-blank
line. The attempts below are ordered and short-circuit:

1. marked content between the first start marker and the first end marker
2. the last non-blank line
3. a synthesized result from the exit status
"""

from __future__ import annotations

from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict, Field, ValidationError

OUTPUT_START_MARKER = "---CRONBOX_OUTPUT_START---"
OUTPUT_END_MARKER = "---CRONBOX_OUTPUT_END---"

GENERIC_FAILURE = "Container execution failed"


@dataclass
class ContainerOutput:
    status: str = "success"
    result: str | None = None
    new_session_id: str | None = None
    error: str | None = None


class _OutputRecord(BaseModel):
    """Wire shape of a structured result."""

    model_config = ConfigDict(populate_by_name=True)

    status: str
    result: str | None = None
    new_session_id: str | None = Field(default=None, alias="newSessionId")
    error: str | None = None


def extract_marked_output(output: str) -> str | None:
    """Text strictly between the markers, or None when there is no well-ordered pair."""
    start_idx = output.find(OUTPUT_START_MARKER)
    end_idx = output.find(OUTPUT_END_MARKER)
    if start_idx == -1 or end_idx == -1 or start_idx >= end_idx:
        return None
    return output[start_idx + len(OUTPUT_START_MARKER) : end_idx]


def parse_record(raw: str) -> ContainerOutput | None:
    """Parse one structured result record, or None if it isn't one."""
    try:
        record = _OutputRecord.model_validate_json(raw)
    except ValidationError:
        return None
    return ContainerOutput(
        status=record.status,
        result=record.result,
        new_session_id=record.new_session_id,
        error=record.error,
    )


def last_non_blank_line(output: str) -> str | None:
    for line in reversed(output.splitlines()):
        if line.strip():
            return line.strip()
    return None


def parse_container_output(output: str, success: bool) -> ContainerOutput:
    """Decode captured stdout into a ContainerOutput. Pure: no I/O, no clock."""
    marked = extract_marked_output(output)
    if marked is not None:
        parsed = parse_record(marked)
        if parsed is not None:
            return parsed

    last_line = last_non_blank_line(output)
    if last_line is not None:
        parsed = parse_record(last_line)
        if parsed is not None:
            return parsed

    if success:
        return ContainerOutput(status="success", result=output)
    return ContainerOutput(status="error", error=GENERIC_FAILURE)
