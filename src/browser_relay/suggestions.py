"""Advisory selector suggestions and action recommendations.

Both helpers work from a flat list of ``ExtractedElement`` values and use
plain, case-sensitive substring matching on ids, names and placeholders.
They are best-effort: missing attributes simply produce fewer suggestions.
"""

from __future__ import annotations

from typing import Any

from browser_relay.models import ExtractedElement

_MAX_TEXT_SELECTOR_LENGTH = 100
_MAX_NAV_LINKS = 5


def suggest_selectors(element: ExtractedElement) -> list[str]:
    """Return candidate selectors for *element*, most specific first."""
    attrs = element.attribute_map
    selectors: list[str] = []

    element_id = element.element_id or attrs.get("id")
    if element_id:
        selectors.append(f"#{element_id}")

    test_id = attrs.get("data-testid")
    if test_id:
        selectors.append(f'[data-testid="{test_id}"]')

    name = attrs.get("name")
    if name:
        selectors.append(f'[name="{name}"]')

    classes = element.class_list or (attrs.get("class") or "").split()
    if classes:
        selectors.append("." + ".".join(classes))

    text = element.text_content
    if text and len(text) < _MAX_TEXT_SELECTOR_LENGTH:
        selectors.append(f'{element.tag}:contains("{text}")')

    selectors.append(element.selector)
    return selectors


def _contains(attrs: dict[str, str], name: str, needle: str) -> bool:
    value = attrs.get(name)
    return value is not None and needle in value


def _is_username_input(element: ExtractedElement) -> bool:
    attrs = element.attribute_map
    return element.tag == "input" and (
        _contains(attrs, "id", "user")
        or _contains(attrs, "name", "user")
        or _contains(attrs, "id", "email")
        or _contains(attrs, "name", "email")
    )


def _is_password_input(element: ExtractedElement) -> bool:
    attrs = element.attribute_map
    return element.tag == "input" and (
        attrs.get("type") == "password"
        or _contains(attrs, "id", "pass")
        or _contains(attrs, "name", "pass")
    )


def _is_search_input(element: ExtractedElement) -> bool:
    attrs = element.attribute_map
    return element.tag == "input" and (
        attrs.get("type") == "search"
        or _contains(attrs, "id", "search")
        or _contains(attrs, "name", "search")
        or _contains(attrs, "placeholder", "search")
    )


def _is_nav_link(element: ExtractedElement) -> bool:
    return element.tag == "a" and (
        element.attribute_map.get("role") == "menuitem" or element.parent_tag == "nav"
    )


def recommend_actions(elements: list[ExtractedElement]) -> list[dict[str, Any]]:
    """Suggest action bundles for login forms, search boxes and navigation."""
    suggested: list[dict[str, Any]] = []

    usernames = [el for el in elements if _is_username_input(el)]
    passwords = [el for el in elements if _is_password_input(el)]
    if usernames and passwords:
        suggested.append(
            {
                "description": "Login form detected",
                "actions": [
                    {
                        "type": "type",
                        "selector": suggest_selectors(usernames[0])[0],
                        "value": "username",
                    },
                    {
                        "type": "type",
                        "selector": suggest_selectors(passwords[0])[0],
                        "value": "password",
                    },
                    {"type": "click", "selector": 'button[type="submit"]'},
                ],
            }
        )

    searches = [el for el in elements if _is_search_input(el)]
    if searches:
        suggested.append(
            {
                "description": "Search form detected",
                "actions": [
                    {
                        "type": "type",
                        "selector": suggest_selectors(searches[0])[0],
                        "value": "search query",
                    },
                    {"type": "press", "key": "Enter"},
                ],
            }
        )

    nav_links = [el for el in elements if _is_nav_link(el)]
    if nav_links:
        suggested.append(
            {
                "description": "Main navigation links detected",
                "actions": [
                    {
                        "type": "click",
                        "selector": suggest_selectors(link)[0],
                        "description": (
                            f"Navigate to {link.text_content or link.attribute_map.get('href')}"
                        ),
                    }
                    for link in nav_links[:_MAX_NAV_LINKS]
                ],
            }
        )

    return suggested
