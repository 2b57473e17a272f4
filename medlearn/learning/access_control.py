"""
Session access control
Decides, per viewer, which sessions are unlocked, which free sessions are
shown as teasers, and what a locked session is allowed to reveal.

Tiers:
- subscribed: everything unlocked
- logged in:  first (teaser count + 3) free sessions unlocked
- guest:      (teaser count) free sessions picked at random on every call
"""

import random
from typing import Iterable, List, Optional

from medlearn import config
from medlearn.learning.models import (
    AccessLevel, ContentItem, ControlledItem, ViewerAccess
)

GUEST_LOCK_REASON = "Please login to access more content"
SUBSCRIBE_LOCK_REASON = "Subscribe to access this content"

# Only these survive on a locked session
LOCKED_FIELDS = (
    "id",
    "title",
    "description",
    "image_url_1920x1080",
    "image_url_522x760",
    "difficulty",
    "module_name",
    "pathology_name",
    "created_at",
    "is_free",
    "session_type",
    "faculty",
)


def shuffle_items(items: List[ContentItem], rng: random.Random) -> List[ContentItem]:
    """Fisher-Yates shuffle of a copy"""
    shuffled = list(items)
    for i in range(len(shuffled) - 1, 0, -1):
        j = rng.randint(0, i)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


def truncate_description(description: Optional[str], length: int = None) -> str:
    if length is None:
        length = config.LOCKED_DESCRIPTION_LENGTH
    if not description:
        return ""
    return description[:length] + "..."


def redact(item: ContentItem) -> dict:
    """Preview projection of a session the viewer may not open"""
    data = item.model_dump(include=set(LOCKED_FIELDS))
    data["title"] = item.title or "Untitled Session"
    data["description"] = truncate_description(item.description)
    return data


def _unlocked(item: ContentItem, level: AccessLevel) -> ControlledItem:
    return ControlledItem(**item.model_dump(), is_locked=False, access_level=level)


def _locked(item: ContentItem, level: AccessLevel, reason: str) -> ControlledItem:
    return ControlledItem(**redact(item), is_locked=True, access_level=level, lock_reason=reason)


def classify(
    items: Iterable[ContentItem],
    access: Optional[ViewerAccess] = None,
    free_teaser_count: int = None,
    rng: Optional[random.Random] = None,
) -> List[ControlledItem]:
    """
    Annotate sessions with lock state for one viewer.

    Unlocked sessions come first, then locked ones. Nothing is dropped or
    duplicated. Pass a seeded ``random.Random`` as ``rng`` to make the guest
    teaser pick reproducible.
    """
    items = list(items)
    if access is None:
        access = ViewerAccess()
    if free_teaser_count is None:
        free_teaser_count = config.FREE_TEASER_COUNT

    if access.is_subscribed:
        return [_unlocked(item, AccessLevel.SUBSCRIBED) for item in items]

    free_items = [item for item in items if item.is_free]
    paid_items = [item for item in items if not item.is_free]

    if not access.is_logged_in:
        rng = rng or random.SystemRandom()
        teaser_count = min(free_teaser_count, len(free_items))
        teasers = shuffle_items(free_items, rng)[:teaser_count]
        teaser_ids = {id(item) for item in teasers}
        remaining = [item for item in free_items if id(item) not in teaser_ids] + paid_items

        return (
            [_unlocked(item, AccessLevel.GUEST) for item in teasers]
            + [_locked(item, AccessLevel.GUEST, GUEST_LOCK_REASON) for item in remaining]
        )

    free_limit = min(free_teaser_count + config.LOGGED_IN_EXTRA_FREE, len(free_items))
    remaining = free_items[free_limit:] + paid_items

    return (
        [_unlocked(item, AccessLevel.LOGGED_IN) for item in free_items[:free_limit]]
        + [_locked(item, AccessLevel.LOGGED_IN, SUBSCRIBE_LOCK_REASON) for item in remaining]
    )
