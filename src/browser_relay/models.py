"""Wire and domain models for browser-relay.

Actions form a closed set of pydantic models keyed by their ``type``.  Raw
client payloads are turned into those models by ``parse_action``; anything
that is not a known kind becomes an ``UnsupportedAction`` so that a single
bad entry never aborts the rest of the batch.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from browser_relay.exceptions import BatchValidationError


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


class _ActionBase(_WireModel):
    # The kind as the client spelled it; echoed back in the result.
    raw_type: str | None = Field(default=None, exclude=True)

    @property
    def kind(self) -> str:
        return self.type  # type: ignore[attr-defined]

    @property
    def label(self) -> str:
        return self.raw_type or self.kind

    def echo(self) -> dict[str, Any]:
        """Fields copied into a successful ``ActionResult``."""
        return {}


class NavigateAction(_ActionBase):
    type: Literal["navigate"] = "navigate"
    url: str = Field(min_length=1)
    wait_until: str | None = Field(default=None, alias="waitUntil")

    def echo(self) -> dict[str, Any]:
        return {"url": self.url}


class ClickAction(_ActionBase):
    type: Literal["click"] = "click"
    selector: str


class ClickCoordinatesAction(_ActionBase):
    type: Literal["click-coordinates"] = "click-coordinates"
    x: float
    y: float

    def echo(self) -> dict[str, Any]:
        return {"x": self.x, "y": self.y}


class TypeAction(_ActionBase):
    type: Literal["type"] = "type"
    selector: str
    value: str = ""
    submit: bool = False


class KeysAction(_ActionBase):
    type: Literal["keys"] = "keys"
    keys: str

    def echo(self) -> dict[str, Any]:
        return {"keys": self.keys}


class PressAction(_ActionBase):
    type: Literal["press"] = "press"
    key: str

    def echo(self) -> dict[str, Any]:
        return {"key": self.key}


class SelectAction(_ActionBase):
    type: Literal["select"] = "select"
    selector: str
    value: str


class WaitAction(_ActionBase):
    type: Literal["wait"] = "wait"
    milliseconds: Any = None

    @property
    def duration_ms(self) -> int:
        try:
            duration = int(self.milliseconds)
        except (TypeError, ValueError):
            return 1000
        return duration or 1000

    def echo(self) -> dict[str, Any]:
        return {"milliseconds": self.milliseconds}


class ScreenshotAction(_ActionBase):
    type: Literal["screenshot"] = "screenshot"
    selector: str | None = None
    full_page: bool = Field(default=False, alias="fullPage")


class ExecuteScriptAction(_ActionBase):
    type: Literal["execute-script"] = "execute-script"
    script: str = Field(validation_alias=AliasChoices("script", "code"))
    arg: Any = None


class ReadCookiesAction(_ActionBase):
    type: Literal["read-cookies"] = "read-cookies"
    urls: list[str] | None = None


class ReadStorageAction(_ActionBase):
    type: Literal["read-storage"] = "read-storage"
    key: str | None = None

    def echo(self) -> dict[str, Any]:
        return {"key": self.key} if self.key is not None else {}


class WriteStorageAction(_ActionBase):
    type: Literal["write-storage"] = "write-storage"
    key: str | None = None
    value: str | None = None
    items: dict[str, str] | None = None

    def entries(self) -> dict[str, str]:
        entries = dict(self.items or {})
        if self.key is not None:
            entries[self.key] = "" if self.value is None else str(self.value)
        return entries


class CloseAction(_ActionBase):
    type: Literal["close"] = "close"


class InspectElementAction(_ActionBase):
    type: Literal["inspect-element"] = "inspect-element"
    selector: str


class UnsupportedAction(_ActionBase):
    """Placeholder for a kind with no handler."""

    type: str


class InvalidAction(_ActionBase):
    """Placeholder for a known kind whose fields failed validation."""

    type: str
    error: str


ACTION_TYPES: dict[str, type[_ActionBase]] = {
    "navigate": NavigateAction,
    "click": ClickAction,
    "click-coordinates": ClickCoordinatesAction,
    "type": TypeAction,
    "keys": KeysAction,
    "press": PressAction,
    "select": SelectAction,
    "wait": WaitAction,
    "screenshot": ScreenshotAction,
    "execute-script": ExecuteScriptAction,
    "read-cookies": ReadCookiesAction,
    "read-storage": ReadStorageAction,
    "write-storage": WriteStorageAction,
    "close": CloseAction,
    "inspect-element": InspectElementAction,
}


def _describe_validation_error(kind: str, exc: ValidationError) -> str:
    missing = [
        ".".join(str(p) for p in err["loc"])
        for err in exc.errors()
        if err["type"] == "missing"
    ]
    if missing:
        return f"{', '.join(missing)} required for {kind} action"
    first = exc.errors()[0]
    loc = ".".join(str(p) for p in first["loc"])
    return f"Invalid {loc} for {kind} action: {first['msg']}"


def parse_action(raw: Any) -> _ActionBase:
    """Turn one raw action mapping into its typed model.

    Raises ``BatchValidationError`` only when the entry is not an action at
    all (not a mapping, or no string ``type``).  Unknown kinds and bad
    fields are returned as placeholders so the executor can report them.
    """
    if not isinstance(raw, dict):
        raise BatchValidationError("Each action must be an object")
    raw_type = raw.get("type")
    if not isinstance(raw_type, str) or not raw_type:
        raise BatchValidationError("Each action requires a string 'type'")

    kind = raw_type.lower()
    model = ACTION_TYPES.get(kind)
    if model is None:
        return UnsupportedAction(type=kind, raw_type=raw_type)
    try:
        action = model.model_validate({**raw, "type": kind})
    except ValidationError as exc:
        return InvalidAction(
            type=kind,
            raw_type=raw_type,
            error=_describe_validation_error(kind, exc),
        )
    action.raw_type = raw_type
    return action


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class ActionResult(_WireModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    type: str
    success: bool
    error: str | None = None
    # Base64 PNG produced by a screenshot action; attached to the batch response.
    screenshot: str | None = Field(default=None, exclude=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------


class ExtractionOptions(_WireModel):
    interactive_only: bool = Field(default=False, alias="interactiveOnly")
    max_depth: int | None = Field(default=None, alias="maxDepth")
    include_text: bool = Field(default=True, alias="includeText")
    text_min_length: int = Field(default=0, alias="textMinLength")
    text_max_length: int | None = Field(default=None, alias="textMaxLength")
    included_tags: list[str] = Field(default_factory=list, alias="includedTags")
    excluded_tags: list[str] = Field(default_factory=list, alias="excludedTags")
    max_elements: int | None = Field(default=None, alias="maxElements")


class ExtractedElement(_WireModel):
    tag: str
    selector: str
    attributes: list[str] = Field(default_factory=list)
    text_content: str | None = Field(default=None, alias="textContent")
    is_interactive: bool = Field(default=False, alias="isInteractive")

    # Advisory data for selector suggestions; never serialized.
    element_id: str | None = Field(default=None, exclude=True)
    class_list: list[str] = Field(default_factory=list, exclude=True)
    attribute_map: dict[str, str] = Field(default_factory=dict, exclude=True)
    parent_tag: str | None = Field(default=None, exclude=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


# ---------------------------------------------------------------------------
# Batches and sessions
# ---------------------------------------------------------------------------


class BatchRequest(_WireModel):
    session_id: str | None = Field(default=None, alias="sessionId")
    actions: list[Any]
    element_options: ExtractionOptions | None = Field(
        default=None, alias="elementOptions"
    )

    @classmethod
    def parse(cls, payload: Any) -> BatchRequest:
        """Validate a raw batch, raising ``BatchValidationError`` when malformed."""
        if not isinstance(payload, dict) or not isinstance(
            payload.get("actions"), list
        ):
            raise BatchValidationError("Array of actions is required")
        try:
            return cls.model_validate(payload)
        except ValidationError as exc:
            raise BatchValidationError(str(exc)) from exc


class BatchResponse(_WireModel):
    success: bool = True
    session_id: str = Field(alias="sessionId")
    actions: list[ActionResult] = Field(default_factory=list)
    url: str | None = None
    title: str | None = None
    elements: list[ExtractedElement] | None = None
    screenshot: str | None = None

    def to_wire(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "success": self.success,
            "sessionId": self.session_id,
            "actions": [r.to_wire() for r in self.actions],
        }
        if self.url is not None:
            data["url"] = self.url
            data["title"] = self.title
        if self.elements is not None:
            data["elements"] = [e.to_wire() for e in self.elements]
        if self.screenshot is not None:
            data["screenshot"] = self.screenshot
        return data


class SessionInfo(_WireModel):
    session_id: str = Field(alias="sessionId")
    url: str | None = None
    title: str | None = None
    created_at: float = Field(alias="createdAt")


# ---------------------------------------------------------------------------
# Monitoring buffers
# ---------------------------------------------------------------------------


@dataclass
class LogEntry:
    type: str
    text: str
    location: str = ""
    timestamp: float = field(default_factory=time.time)


@dataclass
class RequestRecord:
    url: str
    method: str
    headers: dict[str, str] = field(default_factory=dict)
    resource_type: str = ""
    status: int | None = None
    failure: str | None = None
    timestamp: float = field(default_factory=time.time)

    @property
    def pending(self) -> bool:
        return self.status is None and self.failure is None
