"""Profile and inventory access.

The diagnosis pipeline only reads a UserContext snapshot. The write helpers back
the profile and inventory endpoints of the mobile client.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone

import structlog

from toolfix.core.database import InventoryItem, Profile, get_session
from toolfix.core.errors import InvalidArgumentError

logger = structlog.get_logger(__name__)

SKILL_LEVELS = frozenset({"beginner", "intermediate", "expert"})
TOOL_PREFERENCES = frozenset({"manual", "power", "no_preference"})
UNSET = "unset"


@dataclass(frozen=True)
class UserContext:
    """Read-only personalization snapshot taken when a diagnosis starts.

    Attributes:
        skill_level: beginner, intermediate, expert, or "unset".
        tool_preference: manual, power, no_preference, or "unset".
        owned_tools: Names of tools in the user's inventory.
    """
    skill_level: str = UNSET
    tool_preference: str = UNSET
    owned_tools: frozenset[str] = field(default_factory=frozenset)


def tool_slug(name: str) -> str:
    """Inventory key for a tool name: lower case, whitespace runs become underscores."""
    return re.sub(r"\s+", "_", name.strip().lower())


def load_user_context(user_id: str | None) -> UserContext:
    """Fetch the profile and inventory for a user.

    A missing profile or an empty inventory is not an error; defaults apply.

    Args:
        user_id: Authenticated caller id, or None for anonymous requests.

    Returns:
        UserContext snapshot.
    """
    if not user_id:
        return UserContext()

    with get_session() as session:
        profile = session.get(Profile, user_id)
        tools = (
            session.query(InventoryItem.name)
            .filter(InventoryItem.user_id == user_id, InventoryItem.owned.is_(True))
            .all()
        )

    return UserContext(
        skill_level=(profile.skill_level if profile and profile.skill_level else UNSET),
        tool_preference=(profile.tool_preference if profile and profile.tool_preference else UNSET),
        owned_tools=frozenset(name for (name,) in tools),
    )


def get_profile(user_id: str) -> dict:
    with get_session() as session:
        profile = session.get(Profile, user_id)
        if profile is None:
            return {"skill_level": "", "tool_preference": ""}
        return {"skill_level": profile.skill_level, "tool_preference": profile.tool_preference}


def save_profile(user_id: str, skill_level: str, tool_preference: str) -> None:
    """Upsert the user's profile. Empty strings clear a field.

    Raises:
        InvalidArgumentError: If a value is outside the allowed set.
    """
    if skill_level and skill_level not in SKILL_LEVELS:
        raise InvalidArgumentError(f"Unknown skill level: {skill_level}")
    if tool_preference and tool_preference not in TOOL_PREFERENCES:
        raise InvalidArgumentError(f"Unknown tool preference: {tool_preference}")

    with get_session() as session:
        profile = session.get(Profile, user_id)
        if profile is None:
            profile = Profile(user_id=user_id)
            session.add(profile)
        profile.skill_level = skill_level
        profile.tool_preference = tool_preference
        profile.updated_at = datetime.now(timezone.utc)
        session.commit()
        logger.debug("profile.saved", user_id=user_id)


def list_inventory(user_id: str) -> list[str]:
    with get_session() as session:
        rows = (
            session.query(InventoryItem.name)
            .filter(InventoryItem.user_id == user_id, InventoryItem.owned.is_(True))
            .order_by(InventoryItem.name.asc())
            .all()
        )
        return [name for (name,) in rows]


def add_inventory_tool(user_id: str, name: str) -> str:
    """Add a tool to the inventory. Adding an existing tool is a no-op.

    Returns:
        The tool's inventory slug.
    """
    name = name.strip()
    if not name:
        raise InvalidArgumentError("Tool name must not be empty.")
    slug = tool_slug(name)

    with get_session() as session:
        item = (
            session.query(InventoryItem)
            .filter(InventoryItem.user_id == user_id, InventoryItem.slug == slug)
            .one_or_none()
        )
        if item is None:
            session.add(InventoryItem(user_id=user_id, slug=slug, name=name, owned=True))
        else:
            item.name = name
            item.owned = True
        session.commit()

    logger.debug("inventory.added", user_id=user_id, slug=slug)
    return slug


def remove_inventory_tool(user_id: str, name: str) -> bool:
    """Remove a tool by name or slug.

    Returns:
        True if a row was deleted.
    """
    slug = tool_slug(name)
    with get_session() as session:
        deleted = (
            session.query(InventoryItem)
            .filter(InventoryItem.user_id == user_id, InventoryItem.slug == slug)
            .delete()
        )
        session.commit()
    return bool(deleted)
