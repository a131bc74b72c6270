"""Budgeted DOM extraction.

Extraction happens in two steps:

1. A single ``evaluate`` call serializes the ``<body>`` subtree into plain
   ``DomNode`` data (tag, attributes in document order, trimmed text,
   children).  The page already applies the budgets, so the payload stops
   growing once ``max_elements`` nodes have been emitted.
2. ``extract_elements`` walks that tree in document pre-order and emits the
   interactive or text-bearing nodes, honouring the depth, count, text and
   tag budgets of ``ExtractionOptions``.

Depth is counted from the children of the root: ``<body>``'s direct
children are depth 0.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from browser_relay.driver import BrowserDriver, PageHandle
from browser_relay.exceptions import SnapshotError
from browser_relay.models import ExtractedElement, ExtractionOptions

logger = logging.getLogger(__name__)

INTERACTIVE_TAGS = frozenset({"a", "button", "input", "select", "textarea"})

_SERIALIZE_BODY_JS = """
(opts) => {
    const maxDepth = opts.maxDepth;
    const maxElements = opts.maxElements;
    const interactiveTags = new Set(opts.interactiveTags);
    const includedTags = new Set(opts.includedTags);
    const excludedTags = new Set(opts.excludedTags);
    let emitted = 0;

    function budgetSpent() {
        return maxElements !== null && emitted >= maxElements;
    }

    function isInteractive(el, tag) {
        return interactiveTags.has(tag)
            || el.getAttribute('role') === 'button'
            || el.getAttribute('tabindex') === '0'
            || el.hasAttribute('onclick');
    }

    // Text for an element that will be emitted, or null when it will not be.
    function emittedText(el, tag) {
        if (excludedTags.has(tag)) return null;
        if (includedTags.size > 0 && !includedTags.has(tag)) return null;
        const interactive = isInteractive(el, tag);
        if (opts.interactiveOnly && !interactive) return null;
        let text = '';
        if (opts.includeText) {
            text = (el.textContent || '').trim();
            const length = Array.from(text).length;
            if (length < opts.textMinLength
                || (opts.textMaxLength !== null && length > opts.textMaxLength)) {
                text = '';
            }
        }
        if (!interactive && !text) return null;
        return text;
    }

    function serialize(el, depth) {
        const tag = typeof el.tagName === 'string' ? el.tagName.toLowerCase() : '';
        const node = {tag, attributes: [], text: '', children: []};
        const text = depth >= 0 ? emittedText(el, tag) : null;
        if (text !== null) {
            emitted += 1;
            node.text = text;
            node.attributes = Array.from(el.attributes || []).map(a => [a.name, a.value]);
        }
        if (maxDepth === null || depth < maxDepth) {
            for (const child of el.children) {
                if (budgetSpent()) break;
                node.children.push(serialize(child, depth + 1));
            }
        }
        return node;
    }

    if (!document.body) return null;
    return serialize(document.body, -1);
}
"""

_SERIALIZE_ELEMENT_JS = """
(opts) => {
    const el = document.querySelector(opts.selector);
    if (!el) return null;
    const text = (el.textContent || '').trim();
    const parent = el.parentElement;
    return {
        tag: el.tagName.toLowerCase(),
        attributes: Array.from(el.attributes).map(a => [a.name, a.value]),
        text: text,
        parentTag: parent ? parent.tagName.toLowerCase() : null,
        children: [],
    };
}
"""


@dataclass
class DomNode:
    """One element of a serialized DOM tree."""

    tag: str
    attributes: list[tuple[str, str]] = field(default_factory=list)
    text: str = ""
    children: list[DomNode] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DomNode:
        attributes = [
            (str(name), str(value)) for name, value in data.get("attributes") or []
        ]
        return cls(
            tag=str(data.get("tag") or ""),
            attributes=attributes,
            text=str(data.get("text") or ""),
            children=[cls.from_dict(c) for c in data.get("children") or []],
        )

    def get(self, name: str) -> str | None:
        for attr_name, value in self.attributes:
            if attr_name == name:
                return value
        return None


# ---------------------------------------------------------------------------
# Element synthesis
# ---------------------------------------------------------------------------


def _escape_attribute_value(value: str) -> str:
    return value.replace('"', '\\"')


def attribute_fragments(node: DomNode) -> list[str]:
    """Serialize every attribute except ``id`` and ``class`` as ``[name="value"]``."""
    return [
        f'[{name}="{_escape_attribute_value(value)}"]'
        for name, value in node.attributes
        if name not in ("id", "class")
    ]


def build_selector(tag: str, node: DomNode, fragments: list[str]) -> str:
    element_id = node.get("id")
    id_part = f"#{element_id}" if element_id else ""
    classes = "".join(f".{c}" for c in (node.get("class") or "").split())
    return f"{tag}{id_part}{classes}{''.join(fragments)}".strip()


def is_interactive(tag: str, node: DomNode) -> bool:
    return (
        tag in INTERACTIVE_TAGS
        or node.get("role") == "button"
        or node.get("tabindex") == "0"
        or node.get("onclick") is not None
    )


def _text_within_budget(node: DomNode, options: ExtractionOptions) -> str | None:
    if not options.include_text:
        return None
    text = node.text.strip()
    if not text:
        return None
    if len(text) < options.text_min_length:
        return None
    if options.text_max_length is not None and len(text) > options.text_max_length:
        return None
    return text


def build_element(
    node: DomNode, options: ExtractionOptions, parent_tag: str | None = None
) -> ExtractedElement | None:
    """Return the element for *node*, or ``None`` when it should not be emitted."""
    tag = node.tag.lower()
    interactive = is_interactive(tag, node)
    if options.interactive_only and not interactive:
        return None
    text_content = _text_within_budget(node, options)
    if not interactive and text_content is None:
        return None

    fragments = attribute_fragments(node)
    return ExtractedElement(
        tag=tag,
        selector=build_selector(tag, node, fragments),
        attributes=fragments,
        text_content=text_content,
        is_interactive=interactive,
        element_id=node.get("id") or None,
        class_list=(node.get("class") or "").split(),
        attribute_map=dict(node.attributes),
        parent_tag=parent_tag,
    )


# ---------------------------------------------------------------------------
# Tree walk
# ---------------------------------------------------------------------------


class _Budget:
    """Element counter shared by every level of one extraction call."""

    __slots__ = ("limit", "count")

    def __init__(self, limit: int | None) -> None:
        self.limit = limit
        self.count = 0

    @property
    def exhausted(self) -> bool:
        return self.limit is not None and self.count >= self.limit


def _is_filtered(tag: str, options: ExtractionOptions) -> bool:
    if tag in options.excluded_tags:
        return True
    return bool(options.included_tags) and tag not in options.included_tags


def _walk(
    root: DomNode,
    depth: int,
    options: ExtractionOptions,
    budget: _Budget,
    out: list[ExtractedElement],
) -> None:
    if budget.exhausted:
        return
    if options.max_depth is not None and depth > options.max_depth:
        return

    parent_tag = root.tag.lower() or None
    for child in root.children:
        if budget.exhausted:
            return
        tag = child.tag.lower()
        if not _is_filtered(tag, options):
            element = build_element(child, options, parent_tag)
            if element is not None:
                out.append(element)
                budget.count += 1
        # Filtered or skipped nodes still have their subtree walked.
        _walk(child, depth + 1, options, budget, out)


def extract_elements(
    root: DomNode, options: ExtractionOptions | None = None
) -> list[ExtractedElement]:
    """Extract the interactive and text-bearing descendants of *root*.

    Traversal is depth-first pre-order with children in document order, so
    the same tree and options always give the same sequence.
    """
    options = options or ExtractionOptions()
    out: list[ExtractedElement] = []
    _walk(root, 0, options, _Budget(options.max_elements), out)
    return out


# ---------------------------------------------------------------------------
# Page-side entry points
# ---------------------------------------------------------------------------


async def snapshot_tree(
    driver: BrowserDriver, page: PageHandle, options: ExtractionOptions
) -> DomNode | None:
    """Serialize the part of the page body that ``options`` can emit.

    The page applies the same depth, count, text and tag budgets as
    ``extract_elements`` and stops serializing once ``max_elements`` nodes
    have been emitted.  Nodes kept only as ancestors carry no text or
    attributes.
    """
    data = await driver.evaluate(
        page,
        _SERIALIZE_BODY_JS,
        {
            "maxDepth": options.max_depth,
            "maxElements": options.max_elements,
            "interactiveOnly": options.interactive_only,
            "includeText": options.include_text,
            "textMinLength": options.text_min_length,
            "textMaxLength": options.text_max_length,
            "includedTags": list(options.included_tags),
            "excludedTags": list(options.excluded_tags),
            "interactiveTags": sorted(INTERACTIVE_TAGS),
        },
    )
    if not data:
        return None
    return DomNode.from_dict(data)


async def extract_page(
    driver: BrowserDriver, page: PageHandle, options: ExtractionOptions | None = None
) -> list[ExtractedElement]:
    """Extract elements from the live page behind *page*.

    Raises ``SnapshotError`` when the page cannot be serialized, for example
    because it navigated away or closed mid-call.
    """
    options = options or ExtractionOptions()
    try:
        root = await snapshot_tree(driver, page, options)
    except Exception as exc:
        raise SnapshotError(f"Extraction failed: {exc}") from exc
    if root is None:
        logger.debug("Page has no body; nothing to extract")
        return []
    elements = extract_elements(root, options)
    logger.debug(f"Extracted {len(elements)} elements")
    return elements


async def inspect_element(
    driver: BrowserDriver, page: PageHandle, selector: str
) -> ExtractedElement | None:
    """Describe the first element matching *selector*, regardless of budgets."""
    data = await driver.evaluate(page, _SERIALIZE_ELEMENT_JS, {"selector": selector})
    if not data:
        return None
    node = DomNode.from_dict(data)
    tag = node.tag.lower()
    fragments = attribute_fragments(node)
    return ExtractedElement(
        tag=tag,
        selector=build_selector(tag, node, fragments),
        attributes=fragments,
        text_content=node.text.strip() or None,
        is_interactive=is_interactive(tag, node),
        element_id=node.get("id") or None,
        class_list=(node.get("class") or "").split(),
        attribute_map=dict(node.attributes),
        parent_tag=data.get("parentTag"),
    )
