"""
Billing-minutes aggregator.

Sums the minutes recorded in notes and tasks per care program (RPM, CCM,
PCM) over one calendar month, buckets the total into billing increments,
and totals the CPT charges recorded in the same window.
"""
import calendar
from datetime import date, datetime, time
from decimal import Decimal

from sqlalchemy import and_, func, not_, select
from sqlalchemy.ext.asyncio import AsyncSession

from carehub.core import config
from carehub.features.billing.models import CptBilling, CptCode
from carehub.features.clinical.models import Note, Task
from carehub.utils import round_money


PROGRAM_TAGS = ("rpm", "ccm", "pcm")

POLICY_INDEPENDENT = "independent"
POLICY_EXCLUSIVE = "exclusive"


def month_range(day: date | datetime | None = None) -> tuple[datetime, datetime]:
    """
    First and last instant of the calendar month containing `day`.

    >>> month_range(date(2024, 2, 10))
    (datetime.datetime(2024, 2, 1, 0, 0), datetime.datetime(2024, 2, 29, 23, 59, 59, 999999))
    """
    if day is None:
        day = date.today()
    if isinstance(day, datetime):
        day = day.date()
    last_day = calendar.monthrange(day.year, day.month)[1]
    start = datetime.combine(day.replace(day=1), time.min)
    end = datetime.combine(day.replace(day=last_day), time.max)
    return start, end


def calculate_billed_minutes(total_minutes: int | None, increment: int | None = None) -> dict:
    """
    Split a minute total into the billable part (whole increments) and the rest.

    >>> calculate_billed_minutes(47)
    {'total': 47, 'billed': 40, 'unbilled': 7}
    """
    increment = increment or config.BILLING_INCREMENT_MINUTES
    total = int(total_minutes or 0)
    billed = (total // increment) * increment
    unbilled = total - billed
    return {
        "total": total or 0,
        "billed": billed or 0,
        "unbilled": unbilled or 0,
    }


def _tag_condition(column, tag: str, policy: str):
    """Case-insensitive substring match on `type`, honouring the overlap policy."""
    condition = column.ilike(f"%{tag}%")
    if policy == POLICY_EXCLUSIVE:
        earlier = PROGRAM_TAGS[:PROGRAM_TAGS.index(tag)]
        if earlier:
            condition = and_(condition, *[not_(column.ilike(f"%{prev}%")) for prev in earlier])
    return condition


async def _sum_durations(
    db: AsyncSession,
    model,
    patient_id: int,
    tag: str,
    start: datetime,
    end: datetime,
    policy: str,
) -> int:
    # Identical (created, duration) pairs are counted once.
    distinct_rows = (
        select(model.created, model.duration)
        .where(
            model.patient_id == patient_id,
            _tag_condition(model.type, tag, policy),
            model.created.between(start, end),
        )
        .distinct()
        .subquery()
    )
    total = await db.scalar(select(func.coalesce(func.sum(distinct_rows.c.duration), 0)))
    return int(total or 0)


async def program_minutes(
    db: AsyncSession,
    patient_id: int,
    start: datetime,
    end: datetime,
    policy: str | None = None,
) -> dict[str, int]:
    """
    Minutes per program for one patient inside [start, end].

    Returns a dict with `rpm_minutes`, `ccm_minutes` and `pcm_minutes`.
    With the independent policy a row whose type mentions several tags
    counts toward each of them; with the exclusive policy it counts only
    toward the first one in rpm, ccm, pcm order.
    """
    policy = policy or config.PROGRAM_TAG_POLICY
    if policy not in (POLICY_INDEPENDENT, POLICY_EXCLUSIVE):
        raise ValueError(f"Unknown program tag policy: {policy}")

    minutes = {}
    for tag in PROGRAM_TAGS:
        notes = await _sum_durations(db, Note, patient_id, tag, start, end, policy)
        tasks = await _sum_durations(db, Task, patient_id, tag, start, end, policy)
        minutes[f"{tag}_minutes"] = notes + tasks
    return minutes


def cpt_line_total(price: Decimal | float | None, units: int | None) -> Decimal:
    """Price times units, where missing or non-positive units count as one."""
    effective_units = units if units and units > 0 else 1
    return Decimal(str(price or 0)) * effective_units


def cpt_total(rows: list[dict]) -> float:
    """Sum of `price * units` across CPT billing rows, rounded to cents."""
    total = sum((cpt_line_total(row["price"], row["code_units"]) for row in rows), Decimal("0"))
    return round_money(total)


async def cpt_rows(db: AsyncSession, patient_id: int, start: datetime, end: datetime) -> list[dict]:
    """CPT billing rows in the window joined with their code and price."""
    result = await db.execute(
        select(
            CptBilling.cpt_code_id,
            CptCode.code,
            CptBilling.code_units,
            CptBilling.created,
            CptCode.price,
        )
        .outerjoin(CptCode, CptCode.id == CptBilling.cpt_code_id)
        .where(
            CptBilling.patient_id == patient_id,
            CptBilling.created.between(start, end),
        )
        .order_by(CptBilling.created)
    )
    return [
        {
            "cpt_code_id": row.cpt_code_id,
            "code": row.code,
            "code_units": row.code_units,
            "created": row.created,
            "price": round_money(row.price or 0),
        }
        for row in result.all()
    ]
