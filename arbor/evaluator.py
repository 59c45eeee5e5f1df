"""Selector evaluation.

The module-level ``extract_*`` functions implement the six extraction rules
against a parsed :class:`~arbor.common.document.Document`. They are pure:
no network, no shared state.

:class:`SelectorEvaluator` applies them for one orchestrator scope and
handles the two rules with side effects:

- a Link selector that lists itself among its parents is pagination; its
  links go into the scope's seed list and produce no field;
- a Link selector with descendants starts a nested run over its links, and
  the nested run's URL -> record map becomes the field value.

A value of ``None`` from :meth:`SelectorEvaluator.evaluate` means the field
is omitted from the record. That covers every selector that matched
nothing, including ElementAttribute, Element and Table, so a page where
nothing matched produces no record at all.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Awaitable, Callable
from typing import Any
from urllib.parse import urljoin

from lxml.html import HtmlElement

from arbor.common.document import Document
from arbor.common.url_expander import SeedList
from arbor.sitemap import ELEMENT_CHILD_TYPES, Selector, SelectorType, SiteMap

logger = logging.getLogger(__name__)

ExtractionRecord = dict[str, Any]
NestedRunner = Callable[[SiteMap, str], Awaitable[dict[str, ExtractionRecord]]]


def _matches(document: Document, selector: Selector) -> list[HtmlElement]:
    nodes = document.select(selector.selector)
    return nodes if selector.multiple else nodes[:1]


def _apply_regex(text: str, regex: str) -> str:
    """First match of ``regex`` in ``text``, or ``text`` when nothing matches.

    An empty match counts as no match.
    """
    if not regex:
        return text
    found = re.search(regex, text)
    if found is None or not found.group(0).strip():
        return text
    return found.group(0).strip()


def _attribute_or_empty(
    document: Document, node: HtmlElement, name: str, selector: Selector
) -> str:
    value = document.attribute(node, name)
    if value is None:
        logger.warning(
            f"Selector '{selector.id}': attribute '{name}' not found "
            f"on <{node.tag}> at {document.url}"
        )
        return ""
    return value


def _collapse(values: list[str]) -> str | list[str] | None:
    # One value is stored bare, several as a list, none not at all
    if not values:
        return None
    if len(values) == 1:
        return values[0]
    return values


def extract_text(document: Document, selector: Selector) -> list[str]:
    """Trimmed text of each matched node, narrowed by ``regex`` when set."""
    return [
        _apply_regex(Document.text(node).strip(), selector.regex)
        for node in _matches(document, selector)
    ]


def _resolve(document: Document, href: str, selector: Selector) -> str | None:
    try:
        return urljoin(document.url, href)
    except ValueError as e:
        logger.warning(
            f"Selector '{selector.id}': skipping malformed link {href!r} "
            f"at {document.url}: {e}"
        )
        return None


def extract_links(document: Document, selector: Selector) -> list[str]:
    """``href`` of each matched node, resolved against the document URL.

    Hrefs that can't be resolved (e.g. a broken IPv6 host) are logged and
    left out.
    """
    links: list[str] = []
    for node in _matches(document, selector):
        href = _attribute_or_empty(document, node, "href", selector)
        resolved = _resolve(document, href, selector)
        if resolved is not None:
            links.append(resolved)
    return links


def extract_images(document: Document, selector: Selector) -> list[str]:
    """``src`` of each matched node, as written in the page."""
    return [
        _attribute_or_empty(document, node, "src", selector)
        for node in _matches(document, selector)
    ]


def extract_attributes(document: Document, selector: Selector) -> list[str]:
    """The ``extract_attribute`` attribute of each matched node."""
    return [
        _attribute_or_empty(
            document, node, selector.extract_attribute, selector
        )
        for node in _matches(document, selector)
    ]


def extract_elements(
    document: Document, selector: Selector, children: list[Selector]
) -> list[ExtractionRecord]:
    """One mapping per matched container, built from its child selectors.

    Only Text, Image and Link children are evaluated, one level deep,
    against the container's descendants:

    - Text: concatenated text of every match, trimmed (``regex`` applies);
    - Image: ``src`` of the first match;
    - Link: ``href`` of the first match, unresolved.

    Text children are trimmed and narrowed by ``regex`` exactly like a
    top-level Text field.

    A child with no match in a container is left out of that container's
    mapping, and empty mappings are dropped.
    """
    children = [c for c in children if c.type in ELEMENT_CHILD_TYPES]
    mappings: list[ExtractionRecord] = []
    for container in _matches(document, selector):
        mapping: ExtractionRecord = {}
        for child in children:
            found = document.select(child.selector, within=container)
            if not found:
                continue
            if child.type is SelectorType.TEXT:
                text = "".join(Document.text(node) for node in found).strip()
                mapping[child.id] = _apply_regex(text, child.regex)
            elif child.type is SelectorType.IMAGE:
                mapping[child.id] = _attribute_or_empty(
                    document, found[0], "src", child
                )
            else:
                mapping[child.id] = _attribute_or_empty(
                    document, found[0], "href", child
                )
        if mapping:
            mappings.append(mapping)
    return mappings


def extract_table(
    document: Document, selector: Selector
) -> dict[str, list[Any]] | None:
    """Header cells and data rows of every matched table.

    All matched tables are flattened into a single header list and a single
    row list, in document order; tables are not kept apart. Rows without
    ``td`` cells are skipped. Returns None when no table matched.
    """
    tables = document.select(selector.selector)
    if not tables:
        return None

    header: list[str] = []
    rows: list[list[str]] = []
    for table in tables:
        for row_node in document.select("tr", within=table):
            header.extend(
                Document.text(cell).strip()
                for cell in document.select("th", within=row_node)
            )
            row = [
                Document.text(cell).strip()
                for cell in document.select("td", within=row_node)
            ]
            if row:
                rows.append(row)
    return {"header": header, "rows": rows}


class SelectorEvaluator:
    """Evaluates the selectors of one scope against fetched documents.

    Args:
        sitemap: The scope's sitemap. Tree queries (leaf test, Element
            children) are answered from it.
        seeds: The scope's live seed list; pagination links are added here.
        run_nested: Coroutine function that runs a nested scrape for a
            sitemap and parent id and returns its URL -> record map.
    """

    def __init__(
        self,
        sitemap: SiteMap,
        seeds: SeedList,
        run_nested: NestedRunner,
    ) -> None:
        self.sitemap = sitemap
        self.seeds = seeds
        self.run_nested = run_nested

    async def evaluate_scope(
        self, document: Document, parent_id: str
    ) -> ExtractionRecord:
        """Build the record for a page fetched under ``parent_id``.

        Every selector whose first parent is ``parent_id`` contributes at
        most one field, keyed by its id.
        """
        record: ExtractionRecord = {}
        for selector in self.sitemap.children_of(parent_id):
            value = await self.evaluate(document, selector)
            if value is not None:
                record[selector.id] = value
        return record

    async def evaluate(self, document: Document, selector: Selector) -> Any:
        """Value of one selector on one page, or None to omit the field."""
        match selector.type:
            case SelectorType.TEXT:
                return _collapse(extract_text(document, selector))
            case SelectorType.IMAGE:
                return _collapse(extract_images(document, selector))
            case SelectorType.LINK:
                return await self._evaluate_link(document, selector)
            case SelectorType.ELEMENT_ATTRIBUTE:
                return extract_attributes(document, selector) or None
            case SelectorType.ELEMENT:
                children = self.sitemap.children_of(selector.id)
                return (
                    extract_elements(document, selector, children) or None
                )
            case SelectorType.TABLE:
                return extract_table(document, selector)

    async def _evaluate_link(
        self, document: Document, selector: Selector
    ) -> Any:
        links = extract_links(document, selector)

        if selector.is_self_referencing:
            added = await self.seeds.extend_unique(links)
            if added:
                logger.info(
                    f"Selector '{selector.id}' queued {len(added)} new "
                    f"page(s) from {document.url}"
                )
            return None

        if not links:
            return None

        if self.sitemap.is_leaf(selector.id):
            return links

        logger.debug(
            f"Selector '{selector.id}' descending into {len(links)} link(s) "
            f"from {document.url}"
        )
        nested = await self.run_nested(
            self.sitemap.scoped(selector, links), selector.id
        )
        return nested or None
