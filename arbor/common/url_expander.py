"""Seed URL expansion.

A seed pattern may end in a numeric range, ``[<low>-<high>]``, which stands
for one URL per integer in the range::

    >>> list(expand_urls(["https://x/p[3-5]", "https://x/about"]))
    ['https://x/p3', 'https://x/p4', 'https://x/p5', 'https://x/about']

Expansion is lazy. The driver's feeder pulls one URL at a time and awaits
room on a bounded job queue before pulling the next, so a range of a
million pages never sits in memory.

Pagination grows the seed list while the feeder is reading it. The shared
list lives in :class:`SeedList`, which serializes writers and tells the
feeder whether to wait for more pages or stop. The feeder reads it through
:meth:`SeedList.expand`, which applies :func:`expand_pattern` to each
pattern as it arrives; :func:`expand_urls` is the same expansion over a
plain list.
"""

from __future__ import annotations

import asyncio
import re
from collections.abc import AsyncIterator, Iterable, Iterator, Sequence
from urllib.parse import urlparse

RANGE_SUFFIX = re.compile(r"\[(\d{1,10})-(\d{1,10})\]$")


def is_valid_url(url: str) -> bool:
    """True for an absolute http(s) URL with a host."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def _parse_bound(text: str) -> int:
    try:
        return int(text)
    except ValueError:
        return 0


def expand_pattern(pattern: str) -> Iterator[str]:
    """Expand a single pattern.

    Args:
        pattern: A URL, optionally ending in ``[<low>-<high>]``.

    Yields:
        The URL unchanged, or one URL per integer in the inclusive range,
        ascending, with the bracket expression replaced by the integer.
    """
    match = RANGE_SUFFIX.search(pattern)
    if match is None:
        yield pattern
        return

    prefix = pattern[: match.start()]
    low = _parse_bound(match.group(1))
    high = _parse_bound(match.group(2))
    for value in range(low, high + 1):
        yield f"{prefix}{value}"


def expand_urls(patterns: Sequence[str]) -> Iterator[str]:
    """Expand an ordered list of patterns into concrete URLs.

    The list is read by index, so patterns appended while the generator is
    being consumed are expanded as well.
    """
    position = 0
    while position < len(patterns):
        pattern = patterns[position]
        position += 1
        yield from expand_pattern(pattern)


class SeedList:
    """The live seed list of one orchestrator scope.

    Workers append pagination links with :meth:`extend_unique` while the
    feeder reads patterns with :meth:`follow`. Every access to the list and
    to the in-flight job count goes through one ``asyncio.Condition``.

    The feeder can't stop at the end of the list: a job still being worked
    on may discover another page. :meth:`follow` therefore only ends once
    every pattern has been read and no job is in flight.
    """

    def __init__(self, urls: Iterable[str] = ()) -> None:
        self._urls: list[str] = []
        self._seen: set[str] = set()
        for url in urls:
            # Initial seeds are kept as given, duplicates included
            self._urls.append(url)
            self._seen.add(url)
        self._in_flight = 0
        self._condition = asyncio.Condition()

    def __len__(self) -> int:
        return len(self._urls)

    def snapshot(self) -> list[str]:
        """Copy of the current patterns."""
        return list(self._urls)

    async def extend_unique(self, urls: Iterable[str]) -> list[str]:
        """Append every URL not already present (exact string match).

        Args:
            urls: Candidate URLs, in discovery order.

        Returns:
            The URLs actually appended.
        """
        async with self._condition:
            added: list[str] = []
            for url in urls:
                if url in self._seen:
                    continue
                self._seen.add(url)
                self._urls.append(url)
                added.append(url)
            if added:
                self._condition.notify_all()
            return added

    async def job_started(self) -> None:
        async with self._condition:
            self._in_flight += 1

    async def job_finished(self) -> None:
        async with self._condition:
            self._in_flight -= 1
            self._condition.notify_all()

    async def follow(self) -> AsyncIterator[str]:
        """Yield patterns in order, waiting for pagination to add more.

        Ends when all patterns have been yielded and no job is in flight.
        """
        position = 0
        while True:
            async with self._condition:
                await self._condition.wait_for(
                    lambda: position < len(self._urls) or self._in_flight == 0
                )
                if position >= len(self._urls):
                    return
                pattern = self._urls[position]
            position += 1
            yield pattern

    async def expand(self) -> AsyncIterator[str]:
        """Concrete URLs for every pattern :meth:`follow` yields."""
        async for pattern in self.follow():
            for url in expand_pattern(pattern):
                yield url
