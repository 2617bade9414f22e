"""
SLA Calculator Module

Pure functions for classifying a ticket against its SLA deadline and for
computing business-hours-aware deadlines. Nothing here touches the database.
"""

from datetime import datetime, time, timedelta

from incident_desk.schemas.sla import SlaClassification, SlaEvaluation, SlaThresholds


SECONDS_PER_HOUR = 3600

# Monday=0 ... Saturday=5, Sunday=6
WEEKEND_DAYS = (5, 6)


def _hours(delta: timedelta) -> float:
    return delta.total_seconds() / SECONDS_PER_HOUR


def evaluate_ticket(
    ticket_id: str,
    created_at: datetime,
    sla_target: datetime,
    now: datetime,
    thresholds: SlaThresholds
) -> SlaEvaluation:
    """
    Classify a ticket as ok, warning, critical or breach.

    Checks are applied in precedence order and the first match wins:
    overdue, then critical ratio, then warning ratio.

    A deadline at or before the creation time leaves no allotted time to
    take a ratio of, so such tickets are classified as breached.

    Args:
        ticket_id: ID of the ticket being evaluated
        created_at: When the ticket was opened
        sla_target: The ticket's SLA deadline
        now: Instant to evaluate at
        thresholds: Warning/critical elapsed ratios

    Returns:
        SlaEvaluation for the ticket
    """
    total_allotted = sla_target - created_at
    elapsed = now - created_at
    remaining = sla_target - now

    evaluation = {
        "ticket_id": ticket_id,
        "sla_target": sla_target,
        "evaluated_at": now,
    }

    if total_allotted <= timedelta(0):
        return SlaEvaluation(
            classification=SlaClassification.BREACH,
            hours_overdue=max(0.0, -_hours(remaining)),
            **evaluation
        )

    elapsed_ratio = elapsed / total_allotted

    if remaining < timedelta(0):
        return SlaEvaluation(
            classification=SlaClassification.BREACH,
            elapsed_ratio=elapsed_ratio,
            hours_overdue=abs(_hours(remaining)),
            **evaluation
        )

    if elapsed_ratio >= thresholds.critical_ratio:
        classification = SlaClassification.CRITICAL
    elif elapsed_ratio >= thresholds.warning_ratio:
        classification = SlaClassification.WARNING
    else:
        classification = SlaClassification.OK

    return SlaEvaluation(
        classification=classification,
        elapsed_ratio=elapsed_ratio,
        hours_remaining=_hours(remaining),
        **evaluation
    )


def add_business_hours(
    start: datetime,
    hours: float,
    business_hours_only: bool = False,
    day_start_hour: int = 9,
    day_end_hour: int = 17
) -> datetime:
    """
    Add ``hours`` to ``start``, optionally counting only business hours.

    Business hours are weekdays between ``day_start_hour`` and
    ``day_end_hour``. Weekends are skipped; holidays are not known.

    Args:
        start: Starting timestamp
        hours: Hours to add (fractions allowed)
        business_hours_only: If False, plain wall-clock addition
        day_start_hour: Hour the business day opens
        day_end_hour: Hour the business day closes

    Returns:
        The resulting deadline
    """
    if not business_hours_only:
        return start + timedelta(hours=hours)

    if day_end_hour <= day_start_hour:
        raise ValueError("business day must end after it starts")

    current = start
    remaining = timedelta(hours=hours)

    def opening(day: datetime) -> datetime:
        return datetime.combine(day.date(), time()) + timedelta(hours=day_start_hour)

    def next_opening(day: datetime) -> datetime:
        return opening(day + timedelta(days=1))

    while remaining > timedelta(0):
        day_open = opening(current)
        day_close = datetime.combine(current.date(), time()) + timedelta(hours=day_end_hour)

        if current.weekday() in WEEKEND_DAYS:
            current = next_opening(current)
            continue

        if current < day_open:
            current = day_open
            continue

        if current >= day_close:
            current = next_opening(current)
            continue

        until_close = day_close - current
        if remaining <= until_close:
            current += remaining
            remaining = timedelta(0)
        else:
            remaining -= until_close
            current = next_opening(current)

    return current
