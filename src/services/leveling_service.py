"""Leveling service: XP curve, level-up detection and leaderboard.

Levels follow a geometric cost curve. Going from level n to n + 1 costs
floor(100 * 1.5 ** (n - 1)) XP, so the cumulative thresholds start at
0, 100, 250, 475, 812, ...

The stored level is always derived from the stored total. Awards add to the
total with an atomic SQL increment and recompute the level while holding a
per-member lock.
"""

import asyncio
import logging
import math
import weakref

from src.core.config import constants
from src.core.errors import InvalidInputError, require_group_id
from src.core.logging import span
from src.models.service_models import ExperienceAward, LeaderboardEntry, LevelStats, XPProgress
from src.services import assignment_store


logger = logging.getLogger(__name__)

_member_locks: weakref.WeakValueDictionary[tuple[int, str], asyncio.Lock] = weakref.WeakValueDictionary()


def _member_lock(member_id: str) -> asyncio.Lock:
    """Per-member lock, scoped to the running event loop.

    Entries disappear once no caller holds the lock.
    """
    key = (id(asyncio.get_running_loop()), member_id)
    lock = _member_locks.get(key)
    if lock is None:
        lock = asyncio.Lock()
        _member_locks[key] = lock
    return lock


def _require_level(level: int) -> None:
    if isinstance(level, bool) or not isinstance(level, int) or level < 1:
        msg = f"Level must be an integer >= 1, got {level!r}"
        raise InvalidInputError(msg)


def _require_xp(value: int, *, name: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        msg = f"{name} must be a non-negative integer, got {value!r}"
        raise InvalidInputError(msg)


def xp_required_for_level(level: int) -> int:
    """XP needed to advance from ``level`` to ``level + 1``."""
    _require_level(level)
    return math.floor(constants.XP_BASE_COST * constants.XP_GROWTH_FACTOR ** (level - 1))


def level_from_total_xp(total_xp: int) -> int:
    """Highest level whose cumulative cost does not exceed ``total_xp``.

    Examples:
        0 -> 1, 99 -> 1, 100 -> 2, 249 -> 2, 250 -> 3
    """
    _require_xp(total_xp, name="Total XP")
    level = 1
    remaining = total_xp
    while remaining >= (cost := xp_required_for_level(level)):
        remaining -= cost
        level += 1
    return level


def progress_within_level(total_xp: int, level: int) -> XPProgress:
    """Compute XP earned inside ``level`` and the XP needed to leave it.

    Args:
        total_xp: Cumulative XP of the member
        level: Level the member is at (normally level_from_total_xp(total_xp))

    Returns:
        XPProgress with current_xp, needed_xp and an integer percentage (floored)
    """
    _require_xp(total_xp, name="Total XP")
    _require_level(level)

    spent = sum(xp_required_for_level(n) for n in range(1, level))
    current_xp = max(total_xp - spent, 0)
    needed_xp = xp_required_for_level(level)
    return XPProgress(
        current_xp=current_xp,
        needed_xp=needed_xp,
        percentage=current_xp * 100 // needed_xp,
    )


def level_title(level: int) -> str:
    """Display title for a level."""
    _require_level(level)
    titles = constants.LEVEL_TITLES
    if level <= len(titles):
        return titles[level - 1]
    return f"{titles[-1]} (Level {level})"


async def award_experience(*, member_id: str, amount: int) -> ExperienceAward:
    """Add XP to a member and detect level-ups.

    Args:
        member_id: Eligible member receiving the XP
        amount: Non-negative XP amount (task points, doubled for bonus tasks)

    Returns:
        ExperienceAward describing the change, including multi-level jumps

    Raises:
        InvalidInputError: If the amount is negative or not an integer, or the
            member is not eligible to earn XP
        NotFoundError: If the member does not exist
    """
    with span("leveling_service.award_experience"):
        _require_xp(amount, name="XP amount")

        member = await assignment_store.get_member(member_id=member_id)
        if not member.is_eligible:
            msg = f"Member {member_id} does not take part in leveling"
            raise InvalidInputError(msg)

        async with _member_lock(member_id):
            progression = await assignment_store.increment_total_xp(member_id=member_id, amount=amount)
            new_total = progression.total_xp
            old_level = level_from_total_xp(new_total - amount)
            new_level = level_from_total_xp(new_total)

            if progression.level != new_level:
                await assignment_store.set_progression(member_id=member_id, level=new_level, total_xp=new_total)

        leveled_up = new_level > old_level
        if leveled_up:
            logger.info(
                "Member leveled up",
                extra={"member_id": member_id, "old_level": old_level, "new_level": new_level, "total_xp": new_total},
            )
        else:
            logger.debug("Awarded XP", extra={"member_id": member_id, "amount": amount, "total_xp": new_total})

        return ExperienceAward(
            member_id=member_id,
            leveled_up=leveled_up,
            old_level=old_level,
            new_level=new_level,
            xp_gained=amount,
            total_xp=new_total,
            progress=progress_within_level(new_total, new_level),
        )


async def get_level_stats(*, member_id: str) -> LevelStats:
    """Get level, XP, title and in-level progress for a member.

    Raises:
        NotFoundError: If the member does not exist
    """
    with span("leveling_service.get_level_stats"):
        await assignment_store.get_member(member_id=member_id)
        progression = (await assignment_store.find_progressions(member_ids=[member_id]))[member_id]
        return LevelStats(
            member_id=member_id,
            level=progression.level,
            total_xp=progression.total_xp,
            title=level_title(progression.level),
            progress=progress_within_level(progression.total_xp, progression.level),
        )


async def get_leaderboard(*, group_id: str) -> list[LeaderboardEntry]:
    """Rank the group's eligible members by level, then total XP.

    Ties keep member creation order. Ranks are 1..N and never shared.
    """
    with span("leveling_service.get_leaderboard"):
        group_id = require_group_id(group_id)
        members = await assignment_store.list_eligible_members(group_id=group_id)
        progressions = await assignment_store.find_progressions(member_ids=[m.id for m in members])

        ranked = sorted(
            members,
            key=lambda m: (-progressions[m.id].level, -progressions[m.id].total_xp),
        )

        return [
            LeaderboardEntry(
                rank=index + 1,
                member_id=member.id,
                member_name=member.name,
                level=progressions[member.id].level,
                total_xp=progressions[member.id].total_xp,
                title=level_title(progressions[member.id].level),
                progress=progress_within_level(progressions[member.id].total_xp, progressions[member.id].level),
            )
            for index, member in enumerate(ranked)
        ]
