"""
Notion Document Source

Reads meeting transcripts from a Notion database. Each database page is
one transcript; its body is fetched with a second call (block listing).

The source is read-only: nothing here writes back to Notion.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from notion_client import AsyncClient
from notion_client.errors import APIResponseError, RequestTimeoutError, HTTPResponseError

from ..common.errors import TransientExternalError

logger = logging.getLogger("storyforge.pipeline.documents")

DEFAULT_TITLE = "Untitled Meeting"
CREATED_TIME_PROPERTY = "Created time"
SHARE_URL_PROPERTIES = ("Fathom Share URL", "Share URL", "Meeting URL")


@dataclass
class Document:
    """A transcript page in the document store"""
    id: str
    title: str
    created_at: Optional[datetime]
    raw_blocks: List[Dict[str, Any]] = field(default_factory=list)
    share_url: str = ""


def parse_notion_time(value: Optional[str]) -> Optional[datetime]:
    """Parse a Notion ISO 8601 timestamp into an aware datetime"""
    if not value:
        return None
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (ValueError, TypeError):
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _plain_text(parts: List[Dict[str, Any]]) -> str:
    return "".join(p.get("plain_text", "") for p in parts or [])


def page_to_document(page: Dict[str, Any]) -> Document:
    """Map a Notion page object to a Document (without its blocks)"""
    properties = page.get("properties", {})

    title = ""
    name_prop = properties.get("Name")
    if name_prop and name_prop.get("type", "title") == "title":
        title = _plain_text(name_prop.get("title", []))
    if not title:
        for prop in properties.values():
            if prop.get("type") == "title":
                title = _plain_text(prop.get("title", []))
                break

    created_raw = page.get("created_time")
    created_prop = properties.get(CREATED_TIME_PROPERTY, {})
    if created_prop.get("created_time"):
        created_raw = created_prop["created_time"]

    share_url = ""
    for name in SHARE_URL_PROPERTIES:
        url = properties.get(name, {}).get("url")
        if url:
            share_url = url
            break

    return Document(
        id=page.get("id", ""),
        title=title or DEFAULT_TITLE,
        created_at=parse_notion_time(created_raw),
        share_url=share_url,
    )


class NotionDocumentSource:
    """
    Transcript database reader.

    Args:
        token: Notion integration token
        database_id: ID of the transcript database
        client: Pre-built AsyncClient (tests inject a mock here)
    """

    def __init__(
        self,
        token: str = "",
        database_id: str = "",
        client: Optional[Any] = None,
    ):
        self._database_id = database_id
        self._client = client or AsyncClient(auth=token)

    async def query_recent(self, page_size: int = 20) -> List[Document]:
        """Newest transcripts first, capped at ``page_size``"""
        try:
            response = await self._client.databases.query(
                database_id=self._database_id,
                sorts=[{"property": CREATED_TIME_PROPERTY, "direction": "descending"}],
                page_size=page_size,
            )
        except (APIResponseError, HTTPResponseError, RequestTimeoutError) as e:
            raise TransientExternalError(
                "notion", f"database query failed: {e}", getattr(e, "status", None)
            ) from e

        pages = response.get("results", [])
        logger.info("Found %d transcript pages", len(pages))
        return [page_to_document(page) for page in pages]

    async def retrieve(self, page_id: str) -> Document:
        """Fetch a single transcript page (without its blocks)"""
        try:
            page = await self._client.pages.retrieve(page_id=page_id)
        except (APIResponseError, HTTPResponseError, RequestTimeoutError) as e:
            raise TransientExternalError(
                "notion", f"page retrieve failed for {page_id}: {e}", getattr(e, "status", None)
            ) from e
        return page_to_document(page)

    async def fetch_blocks(self, page_id: str) -> List[Dict[str, Any]]:
        """List the top-level blocks of a transcript page"""
        try:
            response = await self._client.blocks.children.list(block_id=page_id)
        except (APIResponseError, HTTPResponseError, RequestTimeoutError) as e:
            raise TransientExternalError(
                "notion", f"block listing failed for {page_id}: {e}", getattr(e, "status", None)
            ) from e
        return response.get("results", [])

    async def load(self, document: Document) -> Document:
        """Attach the block listing to a document"""
        document.raw_blocks = await self.fetch_blocks(document.id)
        return document
