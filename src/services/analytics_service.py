"""Analytics service for the household's weekly report.

The summary covers one period (see src.core.periods) and combines:
- the weekly duty holders for that period
- every daily assignment dated inside it
- the completion history rows (daily and bonus) booked against it
- per-member totals derived from the above
"""

import logging
from datetime import date, datetime

from src.core.errors import require_group_id
from src.core.logging import span
from src.core.periods import get_period_bounds
from src.domain.assignment import AssignmentType
from src.models.service_models import MemberWeekStats, WeeklySummary
from src.services import assignment_store


logger = logging.getLogger(__name__)


async def get_weekly_summary(
    *,
    group_id: str,
    week: date | datetime | str | None = None,
) -> WeeklySummary:
    """Build the report for the period containing ``week``.

    Args:
        group_id: Family group
        week: Any day inside the period (defaults to the current period)

    Returns:
        WeeklySummary with records and per-member stats for eligible members

    Raises:
        InvalidInputError: If the group identifier or date is invalid
    """
    with span("analytics_service.get_weekly_summary"):
        group_id = require_group_id(group_id)
        period = get_period_bounds(week)

        weekly = await assignment_store.list_weekly_assignments(group_id=group_id, period_start=period.start_date)
        daily = await assignment_store.list_daily_assignments(
            group_id=group_id,
            start_date=period.start_date,
            end_date=period.end_date,
        )
        completions = await assignment_store.list_completions(group_id=group_id, week_start=period.start_date)
        members = await assignment_store.list_eligible_members(group_id=group_id)

        stats = {member.id: MemberWeekStats(member_id=member.id, member_name=member.name) for member in members}

        for assignment in daily:
            member_stats = stats.get(assignment.member_id)
            if member_stats is None:
                continue
            member_stats.total_assigned += 1
            if assignment.is_completed:
                member_stats.total_completed += 1

        for completion in completions:
            member_stats = stats.get(completion.member_id)
            if member_stats is None:
                continue
            member_stats.total_points += completion.points_earned
            if completion.assignment_type == AssignmentType.BONUS:
                member_stats.bonus_completed += 1

        logger.info(
            "Built weekly summary",
            extra={"group_id": group_id, "week_start": period.start_date.isoformat(), "completions": len(completions)},
        )

        return WeeklySummary(
            group_id=group_id,
            week_start=period.start_date,
            week_end=period.end_date,
            weekly_assignments=weekly,
            daily_assignments=daily,
            completions=completions,
            stats=list(stats.values()),
        )
