from __future__ import annotations

from enum import Enum
from typing import Any, Literal, TypedDict

FilterMode = Literal["intersection", "union"]
SortDirection = Literal["asc", "desc"]


class PostStatus(str, Enum):
    MISSING = "missing"
    FOUND = "found"
    CLAIMED = "claimed"
    PENDING = "pending"
    FRAUD = "fraud"
    DECLINED = "declined"
    UNCLAIMED = "unclaimed"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    REPORTED = "reported"


class ItemType(str, Enum):
    LOST = "lost"
    FOUND = "found"


class Post(TypedDict, total=False):
    post_id: str
    username: str
    user_id: str
    item_name: str
    profilepicture_url: str | None
    item_image_url: str | None
    item_status: str | None
    category: str | None
    last_seen_at: str | None
    accepted_on_date: str | None
    last_seen_location: str | None
    is_anonymous: bool
    item_description: str | None
    submission_date: str | None
    post_status: str | None
    item_type: str | None


class AuditLogEntry(TypedDict, total=False):
    log_id: str
    user_id: str | None
    user_name: str | None
    email: str | None
    profile_picture_url: str | None
    action_type: str | None
    details: dict[str, Any] | None
    timestamp: str | None
    timestamp_local: str | None


class FilterOption(TypedDict):
    label: str
    value: str


class FilterCategory(TypedDict):
    categoryName: str
    options: list[FilterOption]
