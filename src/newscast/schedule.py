"""Next-occurrence calculation for recurring briefs.

All calendar arithmetic happens in the descriptor's timezone, never in the
host's local time.
"""

from datetime import date, datetime, time, timedelta

from .models import RecurrenceDescriptor, RecurrenceType


def _sunday_based_weekday(day: date) -> int:
    """Weekday number with 0=Sunday .. 6=Saturday."""
    return (day.weekday() + 1) % 7


def next_occurrence(descriptor: RecurrenceDescriptor, now: datetime) -> datetime:
    """Compute the next trigger instant for a recurrence descriptor.

    - daily: today at the configured time if still ahead, else tomorrow
    - weekly: first day from tomorrow (scanning up to 7 days) whose weekday is
      in the set; an empty set means exactly 7 days from today
    - custom: today's configured time plus interval_days

    Args:
        descriptor: Recurrence rule
        now: Current instant; naive values are taken as already being in the
            descriptor timezone

    Returns:
        Timezone-aware datetime in the descriptor timezone

    Raises:
        ValidationError: If the descriptor time or timezone is malformed
    """
    zone = descriptor.zone
    hour, minute = descriptor.hour_minute
    at = time(hour, minute)

    local_now = now.astimezone(zone) if now.tzinfo else now.replace(tzinfo=zone)
    today = local_now.date()

    def on(day: date) -> datetime:
        return datetime.combine(day, at, tzinfo=zone)

    if descriptor.type == RecurrenceType.DAILY:
        candidate = on(today)
        if candidate > local_now:
            return candidate
        return on(today + timedelta(days=1))

    if descriptor.type == RecurrenceType.WEEKLY:
        if descriptor.days_of_week:
            wanted = set(descriptor.days_of_week)
            for offset in range(1, 8):
                day = today + timedelta(days=offset)
                if _sunday_based_weekday(day) in wanted:
                    return on(day)
        return on(today + timedelta(days=7))

    return on(today + timedelta(days=descriptor.interval_days))
