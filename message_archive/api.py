"""
FastAPI backend for Message Archive.

IMPORTANT: This API ONLY reads from the local index (vault.db).
It NEVER touches the backup folder; run `message-archive scan <backup>`
first to build the index. The index is opened read-only and never
migrated here: one built by an older schema answers 503 until rescanned.
"""

from __future__ import annotations

import os
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware

from message_archive.analysis import ChatAnalytics, compute_chat_analytics
from message_archive.config import Config
from message_archive.exceptions import StaleIndexError
from message_archive.index_store import IndexStore
from message_archive.models import Contact, LinkRecord, MessageRecord


def _get_index_db_path() -> Path:
    """Get the path to the index, honouring MESSAGE_ARCHIVE_INDEX_PATH."""
    return Path(
        os.getenv(
            Config.INDEX_PATH_ENV,
            str(Config.DEFAULT_INDEX_PATH / Config.DEFAULT_INDEX_DB_NAME),
        )
    )


@contextmanager
def _open_index() -> Iterator[IndexStore]:
    """
    Open the index for one request.

    Raises HTTPException 503 if the index doesn't exist yet or was built
    by an older schema.
    """
    path = _get_index_db_path()
    if not path.exists():
        raise HTTPException(
            status_code=503,
            detail={
                "error": "index not found",
                "message": "Run `message-archive scan <backup>` first to build the index",
                "path": str(path),
            },
        )
    store = IndexStore(path, read_only=True)
    try:
        store.initialize()
    except StaleIndexError as e:
        raise HTTPException(
            status_code=503,
            detail={
                "error": "index out of date",
                "message": "Run `message-archive scan <backup>` again to rebuild the index",
                "path": str(path),
            },
        ) from e
    try:
        yield store
    finally:
        store.close()


def _require_contact(store: IndexStore, contact_id: int) -> Contact:
    contact = store.get_contact(contact_id)
    if contact is None:
        raise HTTPException(status_code=404, detail=f"Contact {contact_id} not found")
    return contact


def _contact_dict(contact: Contact) -> Dict[str, Any]:
    return {
        "id": contact.id,
        "display_name": contact.display_name,
        "handle": contact.handle,
        "masked_handle": contact.masked_handle,
        "item_count": contact.item_count,
    }


def _message_dict(message: MessageRecord) -> Dict[str, Any]:
    return {
        "id": message.id,
        "contact_id": message.contact_id,
        "text": message.text,
        "timestamp": message.timestamp,
        "sent_at": message.sent_at.isoformat(),
        "is_from_me": message.is_from_me,
        "service": message.service,
        "guid": message.guid,
    }


def _link_dict(link: LinkRecord) -> Dict[str, Any]:
    return {
        "id": link.id,
        "contact_id": link.contact_id,
        "timestamp": link.timestamp,
        "url": link.url,
        "domain": link.domain,
        "category": link.category.value,
        "type": link.type.value,
    }


app = FastAPI(
    title="Message Archive API",
    version="0.1.0",
    description="Read-only API over the local message index. Never accesses the backup directly.",
)

# Local dev CORS defaults
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        os.getenv("MESSAGE_ARCHIVE_ALLOWED_ORIGIN", "http://127.0.0.1:5173"),
        "http://localhost:5173",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
def health() -> Dict[str, Any]:
    """Health check - also reports whether the index exists."""
    path = _get_index_db_path()
    return {
        "status": "ok" if path.exists() else "degraded",
        "index_exists": path.exists(),
        "index_path": str(path),
    }


@app.get("/status")
def status() -> Dict[str, Any]:
    """Row counts and last scan metadata."""
    with _open_index() as store:
        return store.get_status()


@app.get("/contacts")
def contacts() -> List[Dict[str, Any]]:
    """All contacts, highest item count first."""
    with _open_index() as store:
        return [_contact_dict(c) for c in store.list_contacts()]


@app.get("/contacts/{contact_id}/messages")
def contact_messages(
    contact_id: int,
    page: int = Query(default=0, ge=0),
    page_size: int = Query(default=100, ge=1, le=1000),
) -> Dict[str, Any]:
    """One page of a conversation, oldest first."""
    with _open_index() as store:
        contact = _require_contact(store, contact_id)
        messages = store.list_messages(contact_id, page=page, page_size=page_size)
        return {
            "contact": _contact_dict(contact),
            "page": page,
            "page_size": page_size,
            "total": store.get_message_count(contact_id),
            "messages": [_message_dict(m) for m in messages],
        }


@app.get("/contacts/{contact_id}/links")
def contact_links(
    contact_id: int,
    page: int = Query(default=0, ge=0),
    page_size: int = Query(default=50, ge=1, le=500),
) -> Dict[str, Any]:
    """One page of a contact's shared links, newest first, near-duplicates removed."""
    with _open_index() as store:
        contact = _require_contact(store, contact_id)
        links = store.list_links(contact_id, page=page, page_size=page_size)
        return {
            "contact": _contact_dict(contact),
            "page": page,
            "page_size": page_size,
            "links": [_link_dict(link) for link in links],
        }


@app.get("/contacts/{contact_id}/analytics")
def contact_analytics(contact_id: int) -> Dict[str, Any]:
    """Conversation analytics for one contact."""
    with _open_index() as store:
        contact = _require_contact(store, contact_id)
        analytics = compute_chat_analytics(store, contact)
        if analytics is None:
            analytics = ChatAnalytics(contact_name=contact.display_name)
        return analytics.to_dict()


@app.get("/search")
def search(q: str = Query(..., min_length=1)) -> List[Dict[str, Any]]:
    """Messages containing `q`, newest first (at most SEARCH_LIMIT)."""
    with _open_index() as store:
        return [_message_dict(m) for m in store.search_messages(q)]


@app.get("/meta/{key}")
def meta(key: str) -> Dict[str, Any]:
    """A single metadata value (e.g. backup_path, last_scan)."""
    with _open_index() as store:
        value = store.get_meta(key)
    if value is None:
        raise HTTPException(status_code=404, detail=f"Meta key {key!r} not set")
    return {"key": key, "value": value}
