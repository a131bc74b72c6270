"""Tests for browser_relay.models."""

from __future__ import annotations

import pytest

from browser_relay.exceptions import BatchValidationError
from browser_relay.models import (
    ActionResult,
    BatchRequest,
    BatchResponse,
    ClickCoordinatesAction,
    ExecuteScriptAction,
    ExtractedElement,
    ExtractionOptions,
    InvalidAction,
    NavigateAction,
    RequestRecord,
    UnsupportedAction,
    WaitAction,
    WriteStorageAction,
    parse_action,
)


# ---------------------------------------------------------------------------
# 1. parse_action
# ---------------------------------------------------------------------------


class TestParseAction:
    def test_known_kind(self):
        action = parse_action({"type": "navigate", "url": "https://example.com"})
        assert isinstance(action, NavigateAction)
        assert action.url == "https://example.com"
        assert action.label == "navigate"

    def test_kind_is_case_insensitive_but_label_kept(self):
        action = parse_action({"type": "Navigate", "url": "https://example.com"})
        assert isinstance(action, NavigateAction)
        assert action.kind == "navigate"
        assert action.label == "Navigate"

    def test_unknown_kind_is_placeholder(self):
        action = parse_action({"type": "teleport"})
        assert isinstance(action, UnsupportedAction)
        assert action.kind == "teleport"

    def test_missing_fields_become_invalid_action(self):
        action = parse_action({"type": "click-coordinates"})
        assert isinstance(action, InvalidAction)
        assert action.error == "x, y required for click-coordinates action"

    def test_empty_url_is_invalid(self):
        action = parse_action({"type": "navigate", "url": ""})
        assert isinstance(action, InvalidAction)
        assert action.error.startswith("Invalid url")

    def test_numeric_strings_accepted_for_coordinates(self):
        action = parse_action({"type": "click-coordinates", "x": "10", "y": 20.5})
        assert isinstance(action, ClickCoordinatesAction)
        assert (action.x, action.y) == (10.0, 20.5)

    def test_script_alias(self):
        action = parse_action({"type": "execute-script", "code": "() => 1"})
        assert isinstance(action, ExecuteScriptAction)
        assert action.script == "() => 1"

    @pytest.mark.parametrize("raw", ["navigate", None, 3, ["type"]])
    def test_non_mapping_raises(self, raw):
        with pytest.raises(BatchValidationError):
            parse_action(raw)

    @pytest.mark.parametrize("raw", [{}, {"type": ""}, {"type": 5}])
    def test_missing_type_raises(self, raw):
        with pytest.raises(BatchValidationError):
            parse_action(raw)


class TestActionHelpers:
    @pytest.mark.parametrize(
        "milliseconds, expected",
        [(250, 250), ("750", 750), (None, 1000), ("soon", 1000), (0, 1000)],
    )
    def test_wait_duration(self, milliseconds, expected):
        assert WaitAction(milliseconds=milliseconds).duration_ms == expected

    def test_write_storage_entries_merge(self):
        action = WriteStorageAction(key="token", value="abc", items={"theme": "dark"})
        assert action.entries() == {"theme": "dark", "token": "abc"}

    def test_write_storage_entries_empty(self):
        assert WriteStorageAction().entries() == {}


# ---------------------------------------------------------------------------
# 2. Results and responses
# ---------------------------------------------------------------------------


class TestActionResult:
    def test_extra_fields_and_no_screenshot_on_wire(self):
        result = ActionResult(
            type="click", success=True, selector="#go", screenshot="aGVsbG8="
        )
        assert result.to_wire() == {"type": "click", "success": True, "selector": "#go"}

    def test_error_included_when_failed(self):
        result = ActionResult(type="click", success=False, error="boom")
        assert result.to_wire()["error"] == "boom"


class TestBatchRequest:
    def test_parses_camel_case(self):
        request = BatchRequest.parse(
            {
                "sessionId": "s1",
                "actions": [{"type": "wait"}],
                "elementOptions": {"interactiveOnly": True, "maxElements": 5},
            }
        )
        assert request.session_id == "s1"
        assert request.element_options.interactive_only is True
        assert request.element_options.max_elements == 5

    @pytest.mark.parametrize("payload", [None, {}, {"actions": "click"}, []])
    def test_missing_actions_raises(self, payload):
        with pytest.raises(BatchValidationError, match="Array of actions is required"):
            BatchRequest.parse(payload)


class TestBatchResponse:
    def test_minimal_wire_shape(self):
        response = BatchResponse(session_id="s1")
        assert response.to_wire() == {"success": True, "sessionId": "s1", "actions": []}

    def test_title_null_kept_with_url(self):
        response = BatchResponse(session_id="s1", url="https://example.com")
        wire = response.to_wire()
        assert wire["url"] == "https://example.com"
        assert wire["title"] is None


class TestExtractionModels:
    def test_options_snake_case_accepted(self):
        options = ExtractionOptions(max_depth=2, text_min_length=3)
        assert options.max_depth == 2
        assert options.max_elements is None

    def test_element_wire_omits_advisory_fields(self):
        element = ExtractedElement(
            tag="a",
            selector="a#home",
            element_id="home",
            attribute_map={"id": "home"},
            parent_tag="nav",
        )
        assert element.to_wire() == {
            "tag": "a",
            "selector": "a#home",
            "attributes": [],
            "textContent": None,
            "isInteractive": False,
        }


class TestRequestRecord:
    def test_pending_until_status_or_failure(self):
        record = RequestRecord(url="https://example.com", method="GET")
        assert record.pending
        record.status = 200
        assert not record.pending
