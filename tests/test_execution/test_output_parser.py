"""Tests for the container output parser."""

import json

from cronbox.execution.output_parser import (
    GENERIC_FAILURE,
    OUTPUT_END_MARKER,
    OUTPUT_START_MARKER,
    extract_marked_output,
    last_non_blank_line,
    parse_container_output,
)


def _wrap(payload: str) -> str:
    return f"{OUTPUT_START_MARKER}\n{payload}\n{OUTPUT_END_MARKER}"


class TestExtractMarkedOutput:
    def test_extracts_content_between_markers(self):
        output = f"Some prefix\n{OUTPUT_START_MARKER}\n{{\"status\": \"success\"}}\n{OUTPUT_END_MARKER}\nSome suffix"
        assert extract_marked_output(output) == '\n{"status": "success"}\n'

    def test_no_markers(self):
        assert extract_marked_output("No markers here") is None

    def test_only_start_marker(self):
        assert extract_marked_output(f"{OUTPUT_START_MARKER}\nsome content") is None

    def test_reversed_markers(self):
        output = f"{OUTPUT_END_MARKER}\ncontent\n{OUTPUT_START_MARKER}"
        assert extract_marked_output(output) is None

    def test_empty_content(self):
        assert extract_marked_output(OUTPUT_START_MARKER + OUTPUT_END_MARKER) == ""


class TestParseContainerOutput:
    def test_marked_output_with_prefix_and_suffix(self):
        output = "prefix\n" + _wrap(json.dumps({"status": "success", "result": "ok"})) + "\nsuffix"
        parsed = parse_container_output(output, True)
        assert parsed.status == "success"
        assert parsed.result == "ok"
        assert parsed.error is None

    def test_marked_output_returned_verbatim_even_if_exit_failed(self):
        output = _wrap(json.dumps({"status": "success", "result": "done"}))
        parsed = parse_container_output(output, False)
        assert parsed.status == "success"
        assert parsed.result == "done"

    def test_error_record(self):
        parsed = parse_container_output(_wrap(json.dumps({"status": "error", "error": "Something failed"})), True)
        assert parsed.status == "error"
        assert parsed.error == "Something failed"

    def test_extracts_session_id(self):
        record = {"status": "success", "result": "Done", "newSessionId": "sess-123"}
        assert parse_container_output(_wrap(json.dumps(record)), True).new_session_id == "sess-123"

    def test_accepts_snake_case_session_id(self):
        record = {"status": "success", "new_session_id": "sess-456"}
        assert parse_container_output(json.dumps(record), True).new_session_id == "sess-456"

    def test_multiline_marked_json(self):
        output = f'{OUTPUT_START_MARKER}\n{{"status": "success",\n"result": "Hello"}}\n{OUTPUT_END_MARKER}'
        assert parse_container_output(output, True).result == "Hello"

    def test_last_line_json(self):
        output = 'log line\n{"status": "success", "result": "from last line"}\n\n   \n'
        parsed = parse_container_output(output, True)
        assert parsed.status == "success"
        assert parsed.result == "from last line"

    def test_invalid_marked_content_falls_back_to_last_line(self):
        output = f'{OUTPUT_START_MARKER}not json{OUTPUT_END_MARKER}\n{{"status": "success", "result": "tail"}}'
        assert parse_container_output(output, True).result == "tail"

    def test_empty_marked_content_falls_back_to_last_line(self):
        output = f'{OUTPUT_START_MARKER}{OUTPUT_END_MARKER}\n{{"status": "error", "error": "late"}}'
        parsed = parse_container_output(output, True)
        assert parsed.status == "error"
        assert parsed.error == "late"

    def test_reversed_markers_fall_back_to_last_line(self):
        output = f'{OUTPUT_END_MARKER}\n{OUTPUT_START_MARKER}\n{{"status": "success", "result": "last"}}'
        assert parse_container_output(output, True).result == "last"

    def test_record_without_status_is_not_structured(self):
        output = json.dumps({"result": "no status"})
        parsed = parse_container_output(output, True)
        assert parsed.status == "success"
        assert parsed.result == output

    def test_plain_text_success(self):
        parsed = parse_container_output("just some text\n", True)
        assert parsed.status == "success"
        assert parsed.result == "just some text\n"

    def test_plain_text_failure(self):
        parsed = parse_container_output("crashed\n", False)
        assert parsed.status == "error"
        assert parsed.result is None
        assert parsed.error == GENERIC_FAILURE

    def test_empty_output_success(self):
        parsed = parse_container_output("", True)
        assert parsed.status == "success"
        assert parsed.result == ""
        assert parsed.error is None

    def test_empty_output_failure(self):
        parsed = parse_container_output("", False)
        assert parsed.status == "error"
        assert parsed.result is None
        assert parsed.error == GENERIC_FAILURE


class TestLastNonBlankLine:
    def test_skips_trailing_blank_lines(self):
        assert last_non_blank_line("a\nb\n\n  \n") == "b"

    def test_all_blank(self):
        assert last_non_blank_line("\n  \n") is None
