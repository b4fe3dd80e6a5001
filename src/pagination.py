"""Draining cursor based listing APIs into complete lists."""

from __future__ import annotations

from typing import Any, Callable, Iterator, Optional, Tuple, TypeVar

import config

T = TypeVar("T")

Page = Tuple[list, Optional[str]]
PageFetcher = Callable[[Optional[str]], Page]

logger = config.get_logger(service="pagination")


def collect(fetch_page: Callable[[Optional[str]], Tuple[list[T], Optional[str]]]) -> list[T]:
    """Call fetch_page until it stops returning a cursor.

    The first call gets None. Items keep page order and in-page order; nothing is
    deduplicated. An exception from any page propagates and the items gathered so
    far are dropped with it.
    """
    items: list[T] = []
    cursor: Optional[str] = None
    pages = 0
    while True:
        page_items, cursor = fetch_page(cursor)
        items.extend(page_items)
        pages += 1
        if not cursor:
            break
    logger.debug("Collected items", extra={"pages": pages, "items": len(items)})
    return items


def boto3_pages(client: Any, operation_name: str, result_key: str, **params: Any) -> PageFetcher:
    """Adapt a boto3 paginator to a page fetcher for collect.

    Pages are pulled from the paginator one per call, the cursor handed back is the
    page's NextToken.
    """
    pages: Optional[Iterator[dict]] = None

    def fetch_page(cursor: Optional[str]) -> Page:  # noqa: ARG001
        nonlocal pages
        if pages is None:
            pages = iter(client.get_paginator(operation_name).paginate(**params))
        page = next(pages, {})
        return list(page.get(result_key, [])), page.get("NextToken")

    return fetch_page


def collect_boto3(client: Any, operation_name: str, result_key: str, **params: Any) -> list:
    return collect(boto3_pages(client, operation_name, result_key, **params))
