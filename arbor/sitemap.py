"""Sitemap model: seed URLs plus a tree of typed selectors.

The tree is implicit. Every selector names its parent scope in
``parentSelectors``; the scope is either ``"_root"`` (the seed pages) or the
id of another selector. Only the first entry of ``parentSelectors`` places a
selector in the tree; listing a selector among its own parents marks it as
a pagination link.

Example::

    sitemap = SiteMap.model_validate(
        {
            "_id": "books",
            "startUrl": ["https://example.com/catalogue/page-[1-3].html"],
            "selectors": [
                {
                    "id": "book",
                    "type": "SelectorLink",
                    "parentSelectors": ["_root"],
                    "selector": "h3 a",
                    "multiple": True,
                },
                {
                    "id": "title",
                    "type": "SelectorText",
                    "parentSelectors": ["book"],
                    "selector": "h1",
                },
            ],
        }
    )
    sitemap.children_of("_root")  # [book]
    sitemap.is_leaf("book")       # False
"""

from __future__ import annotations

import re
from enum import Enum

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

ROOT_PARENT = "_root"


class SelectorType(str, Enum):
    """Extraction rule attached to a selector."""

    TEXT = "SelectorText"
    LINK = "SelectorLink"
    IMAGE = "SelectorImage"
    ELEMENT_ATTRIBUTE = "SelectorElementAttribute"
    ELEMENT = "SelectorElement"
    TABLE = "SelectorTable"


# Selector types that may appear inside an Element container
ELEMENT_CHILD_TYPES = frozenset(
    {SelectorType.TEXT, SelectorType.IMAGE, SelectorType.LINK}
)


class Selector(BaseModel):
    """One node of the sitemap tree.

    Attributes:
        id: Identifier, unique within the sitemap. Used as the record key.
        type: The extraction rule.
        parent_selectors: Ordered parent scopes; only the first is used to
            place the selector in the tree.
        selector: CSS expression locating the nodes.
        multiple: Take every match instead of only the first.
        regex: Text only. Pattern applied to each node's trimmed text.
        delay: Declared in sitemaps, not enforced by the driver.
        extract_attribute: ElementAttribute only. Attribute to read.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str
    type: SelectorType
    parent_selectors: list[str] = Field(
        alias="parentSelectors", min_length=1
    )
    selector: str = ""
    multiple: bool = False
    regex: str = ""
    delay: int = 0
    extract_attribute: str = Field(
        default="",
        validation_alias=AliasChoices(
            "extractAttribute", "exactAttribute", "extract_attribute"
        ),
        serialization_alias="extractAttribute",
    )

    @field_validator("type", mode="before")
    @classmethod
    def _accept_short_type_names(cls, value: object) -> object:
        # "Text" and "SelectorText" both name the same rule
        if isinstance(value, str) and not value.startswith("Selector"):
            return f"Selector{value}"
        return value

    @field_validator("regex")
    @classmethod
    def _regex_compiles(cls, value: str) -> str:
        if value:
            try:
                re.compile(value)
            except re.error as e:
                raise ValueError(f"invalid regex {value!r}: {e}") from e
        return value

    @model_validator(mode="after")
    def _attribute_required(self) -> Selector:
        if (
            self.type is SelectorType.ELEMENT_ATTRIBUTE
            and not self.extract_attribute
        ):
            raise ValueError(
                f"selector '{self.id}' of type {self.type.value} "
                "requires extractAttribute"
            )
        return self

    @property
    def parent_id(self) -> str:
        """The scope this selector is evaluated in."""
        return self.parent_selectors[0]

    @property
    def is_self_referencing(self) -> bool:
        """True when the selector lists itself as a parent (pagination)."""
        return self.id in self.parent_selectors


class SiteMap(BaseModel):
    """Seed URL patterns and the selector tree.

    The model is treated as immutable for the length of a run. Pagination
    does not touch ``start_urls``; the driver copies them into a
    :class:`~arbor.common.url_expander.SeedList` and grows that instead.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default="", alias="_id")
    start_urls: list[str] = Field(default_factory=list, alias="startUrl")
    selectors: list[Selector] = Field(default_factory=list)

    def children_of(self, parent_id: str) -> list[Selector]:
        """Selectors whose first parent is ``parent_id``, in declaration order."""
        return [s for s in self.selectors if s.parent_id == parent_id]

    def is_leaf(self, selector_id: str) -> bool:
        """True when no selector declares ``selector_id`` as its first parent."""
        return not any(s.parent_id == selector_id for s in self.selectors)

    def descendants_of(self, selector_id: str) -> list[Selector]:
        """Every selector below ``selector_id``, breadth first.

        Each selector is reported once even if the parent references loop.
        """
        found: list[Selector] = []
        seen: set[int] = set()
        frontier = [selector_id]
        while frontier:
            parent_id = frontier.pop(0)
            for child in self.children_of(parent_id):
                if id(child) in seen:
                    continue
                seen.add(id(child))
                found.append(child)
                frontier.append(child.id)
        return found

    def scoped(self, selector: Selector, start_urls: list[str]) -> SiteMap:
        """Build the sitemap for a nested run below ``selector``.

        The new sitemap is seeded with ``start_urls`` and carries only the
        selectors beneath ``selector``.
        """
        return SiteMap(
            id=selector.id,
            start_urls=list(start_urls),
            selectors=self.descendants_of(selector.id),
        )
