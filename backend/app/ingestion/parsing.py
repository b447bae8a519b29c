"""
parsing.py — Markup extraction helpers shared by the source adapters.

Every HTML source is read the same way: select item containers with a CSS
selector, then pull title / description / date / validity / link out of
each container with a second set of selectors. Only the selectors differ
per source, so they live in a small FieldSelectors value.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup
from bs4.element import Tag

from backend.app.alerts.models import RawAlertCandidate
from backend.app.core.errors import ParseError

logger = logging.getLogger(__name__)

MAX_DESCRIPTION_CHARS = 500
HTML_PARSER = "html.parser"


@dataclass(frozen=True)
class FieldSelectors:
    """CSS selectors applied inside one item container."""
    title: str = "h3, h4, .title"
    description: str = "p, .description, .content"
    date: str = ".date, .published-date"
    validity: Optional[str] = None


def clean_text(text: Any) -> str:
    """Collapse runs of whitespace and strip; anything but a string is empty."""
    if not isinstance(text, str) or not text:
        return ""
    return " ".join(text.split())


def truncate(text: str, limit: int = MAX_DESCRIPTION_CHARS) -> str:
    return text if len(text) <= limit else text[:limit]


def first_text(element: Tag, selector: Optional[str]) -> str:
    """Text of the first descendant matching ``selector``, or ""."""
    if not selector:
        return ""
    found = element.select_one(selector)
    return clean_text(found.get_text(" ")) if found else ""


def resolve_link(element: Tag, base_url: str) -> Optional[str]:
    """First ``a[href]`` in the element, made absolute against ``base_url``."""
    anchor = element.select_one("a[href]")
    if anchor is None:
        return None
    href = anchor.get("href", "").strip()
    if not href or href.startswith(("javascript:", "#")):
        return None
    return urljoin(base_url, href)


def select_items(html: str, selector: str) -> List[Tag]:
    soup = BeautifulSoup(html, HTML_PARSER)
    return soup.select(selector)


def element_to_candidate(
    element: Tag,
    *,
    source_id: str,
    base_url: str,
    fields: FieldSelectors,
) -> RawAlertCandidate:
    """
    Build a candidate from one item container.

    Raises ParseError when the container has no title; callers skip that
    element and carry on with the rest.
    """
    title = first_text(element, fields.title)
    if not title:
        raise ParseError(source_id, "item has no title")

    return RawAlertCandidate(
        title=title,
        description=truncate(first_text(element, fields.description)),
        date_text=first_text(element, fields.date),
        validity_text=first_text(element, fields.validity),
        link=resolve_link(element, base_url) or base_url,
        source_id=source_id,
    )


def extract_candidates(
    html: str,
    *,
    selector: str,
    source_id: str,
    base_url: str,
    fields: FieldSelectors,
) -> List[RawAlertCandidate]:
    """All candidates in a page; malformed items are logged and skipped."""
    candidates: List[RawAlertCandidate] = []
    for element in select_items(html, selector):
        try:
            candidates.append(element_to_candidate(
                element, source_id=source_id, base_url=base_url, fields=fields,
            ))
        except ParseError as exc:
            logger.debug("Skipping item: %s", exc.message, extra={"source_id": source_id})
    return candidates
