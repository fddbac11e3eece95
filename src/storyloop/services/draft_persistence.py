"""Autosave and recovery of in-progress edits.

Drafts are JSON documents ``{content, metadata, saved_at}`` stored under
``<prefix><content_id>`` (``draft-<content_id>`` by default) in an injected
key-value store. A draft is written while the edited text differs from the
last saved text, removed after an explicit save, and read once when the
editor opens.

Staleness policy: a draft that has reached the TTL (one hour by default)
when it is loaded is discarded outright. It is neither applied to the
editor nor offered as unsaved changes.
"""

import json
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

import structlog
from pydantic import ValidationError

from storyloop.models.draft import Draft
from storyloop.services.kv_store import KeyValueStore

logger = structlog.get_logger()

DEFAULT_TTL = timedelta(hours=1)
DEFAULT_KEY_PREFIX = "draft-"

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class DraftPersistence:
    """
    Draft autosave over a KeyValueStore.

    Never raises for store or data problems: unreadable drafts count as
    absent and failed writes are logged (the in-memory edit is unaffected,
    it just is not durable yet).
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        ttl: timedelta = DEFAULT_TTL,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        clock: Clock = utc_now,
    ):
        """
        Args:
            store: Shared key-value store
            ttl: Age at which a draft is no longer recoverable
            key_prefix: Prefix joined to the content id to form the store key
            clock: Returns the current timezone-aware time
        """
        self.store = store
        self.ttl = ttl
        self.key_prefix = key_prefix
        self._clock = clock

    def key_for(self, content_id: str) -> str:
        return f"{self.key_prefix}{content_id}"

    def save_draft(
        self,
        content_id: str,
        content: str,
        metadata: Optional[dict[str, Any]] = None,
        base_content: Optional[str] = None,
    ) -> bool:
        """
        Write (or overwrite) the draft for ``content_id``.

        Args:
            content_id: Id of the variant/content being edited
            content: Current editor text
            metadata: Extra JSON-serialisable data stored with the draft
            base_content: Last saved text; nothing is written when content equals it

        Returns:
            True if a draft was written
        """
        if base_content is not None and content == base_content:
            logger.debug("draft_save_skipped_unchanged", content_id=content_id)
            return False

        key = self.key_for(content_id)
        draft = Draft(key=key, content=content, metadata=metadata or {}, saved_at=self._clock())

        try:
            self.store.set(key, draft.model_dump_json(exclude={"key"}))
        except Exception as e:
            # Quota exceeded, disk full, unserialisable metadata...
            logger.warning("draft_save_failed", content_id=content_id, error=str(e),
                           error_type=type(e).__name__)
            return False

        logger.debug("draft_saved", content_id=content_id, size=len(content))
        return True

    def load_draft(self, content_id: str) -> Optional[Draft]:
        """
        Read the draft for ``content_id``.

        Returns:
            The draft, or None when absent, unreadable or stale (stale drafts
            are also removed from the store)
        """
        key = self.key_for(content_id)
        try:
            raw = self.store.get(key)
        except Exception as e:
            logger.warning("draft_load_failed", content_id=content_id, error=str(e))
            return None

        if raw is None:
            return None

        try:
            data = json.loads(raw)
            draft = Draft(key=key, **data)
        except (json.JSONDecodeError, TypeError, ValidationError) as e:
            logger.warning("draft_malformed", content_id=content_id, error=str(e))
            return None

        now = self._clock()
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        if draft.saved_at.tzinfo is None:
            draft = draft.model_copy(update={"saved_at": draft.saved_at.replace(tzinfo=timezone.utc)})

        if draft.is_stale(now, self.ttl):
            logger.info(
                "draft_discarded_stale",
                content_id=content_id,
                age_seconds=int(draft.age(now).total_seconds()),
                ttl_seconds=int(self.ttl.total_seconds()),
            )
            self.clear_draft(content_id)
            return None

        logger.debug("draft_loaded", content_id=content_id)
        return draft

    def clear_draft(self, content_id: str) -> None:
        try:
            self.store.remove(self.key_for(content_id))
        except Exception as e:
            logger.warning("draft_clear_failed", content_id=content_id, error=str(e))
            return
        logger.debug("draft_cleared", content_id=content_id)
