"""Parsed page wrapper for CSS querying.

This module provides Document, a thin wrapper around an lxml tree and the
URL it was fetched from. Selector expressions are CSS, translated to XPath
with cssselect. Querying a container searches its descendants only, never
the container itself; querying the document searches the whole tree.
"""

from __future__ import annotations

import logging
from functools import lru_cache

from cssselect import HTMLTranslator, SelectorError
from lxml import html
from lxml.html import HtmlElement

logger = logging.getLogger(__name__)

_translator = HTMLTranslator()


@lru_cache(maxsize=512)
def css_to_xpath(selector: str, prefix: str) -> str:
    """Translate a CSS selector, caching the result.

    Raises:
        cssselect.SelectorError: If the selector doesn't parse.
    """
    return _translator.css_to_xpath(selector, prefix=prefix)


class Document:
    """A fetched page: the parsed lxml tree and its base URL.

    Attributes:
        root: The document's root HtmlElement.
        url: The URL the page was fetched from. Relative links resolve
            against it.
    """

    def __init__(self, root: HtmlElement, url: str) -> None:
        self.root = root
        self.url = url

    @classmethod
    def from_html(
        cls, markup: str | bytes, url: str, encoding: str | None = None
    ) -> Document:
        """Parse page markup, or a ``<body>`` fragment, into a Document.

        Args:
            markup: The page. Raw response bytes are parsed as is, so pages
                that open with an XML encoding declaration are accepted.
            url: Base URL of the page.
            encoding: Charset of ``markup`` when it is bytes. None lets lxml
                read it from the document.

        Empty markup yields an empty document rather than a parser error.
        """
        if not markup.strip():
            return cls(html.document_fromstring("<html><body></body></html>"), url)
        parser = None
        if isinstance(markup, bytes) and encoding:
            parser = html.HTMLParser(encoding=encoding)
        return cls(html.document_fromstring(markup, parser=parser), url)

    def select(
        self, selector: str, within: HtmlElement | None = None
    ) -> list[HtmlElement]:
        """Find elements matching a CSS selector, in document order.

        Args:
            selector: CSS selector expression.
            within: Optional container; only its descendants are searched.

        Returns:
            Matching elements. An invalid selector logs a warning and
            matches nothing.
        """
        if within is None:
            context, prefix = self.root, "descendant-or-self::"
        else:
            context, prefix = within, "descendant::"

        try:
            xpath = css_to_xpath(selector, prefix)
        except SelectorError as e:
            logger.warning(
                f"Invalid CSS selector {selector!r} on {self.url}: {e}"
            )
            return []

        return [r for r in context.xpath(xpath) if isinstance(r, HtmlElement)]

    @staticmethod
    def text(element: HtmlElement) -> str:
        """Text content of an element and its descendants, untrimmed."""
        return str(element.text_content())

    @staticmethod
    def attribute(element: HtmlElement, name: str) -> str | None:
        """Attribute value, or None if the element doesn't carry it."""
        return element.get(name)
