"""Idea inbox.

The lightest way in: an idea dropped here is only recorded, one write-once
file per submission under `inbox/`. Staging it as a Pending Job is a
separate, deliberate `intake`.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any

import structlog

from swarm_factory.core import paths
from swarm_factory.core.dates import MonotonicClock
from swarm_factory.core.errors import InvalidInputError
from swarm_factory.core.jobs import slugify
from swarm_factory.core.models import InboxItem
from swarm_factory.core.repository import RunRepository

logger = structlog.get_logger(__name__)

DEFAULT_REQUESTER = "web"


@dataclass(frozen=True)
class InboxResult:
    file: str
    item: InboxItem
    commit: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"file": self.file, "commit": self.commit, "item": self.item.to_dict()}


class Inbox:
    def __init__(self, repository: RunRepository, clock: MonotonicClock | None = None) -> None:
        self.repository = repository
        self.clock = clock or MonotonicClock()

    def submit(self, idea: str | None, requester: str | None = None) -> InboxResult:
        text = (idea or "").strip()
        if not text:
            raise InvalidInputError("Missing idea")

        item = InboxItem(
            id=str(uuid.uuid4()),
            created_at=self.clock.now_iso(),
            idea=text,
            requester=(requester or "").strip() or DEFAULT_REQUESTER,
        )
        slug = slugify(text)
        path = paths.inbox_item_path(item.created_at, slug)
        message = f"inbox: {slug or item.id}"

        self.repository.begin_batch()
        self.repository.save_inbox_item(item, path, message)
        published = self.repository.publish(message)
        logger.info("inbox item recorded", item_id=item.id, path=path)
        return InboxResult(file=path, item=item, commit=published.commit)

    def list(self, limit: int | None = None) -> list[InboxItem]:
        return self.repository.list_inbox(limit)
