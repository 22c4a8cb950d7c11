"""
Recurrence date arithmetic for bills.

A recurrence rule is one of four frozen value types (``OneTimeRule``,
``MonthlyRule``, ``YearlyRule``, ``CustomRule``). Every function here is pure:
the reference date is always passed in, never read from the clock.

Month-length overflow (day 31 in April, 29 February in a common year) is
governed by ``DateOverflow``:

* ``ROLLOVER`` lets the surplus days spill into the following month, so
  day 31 of February 2024 becomes 2 March 2024. This matches the dates the
  existing bill records were generated with.
* ``CLAMP`` pins the date to the last day of the target month instead.
"""
from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from typing import Optional, Union

from dateutil.relativedelta import relativedelta

from dompet.features.bills.exceptions import RuleValidationError


class RecurrenceType(str, Enum):
    ONE_TIME = "one_time"
    MONTHLY = "monthly"
    YEARLY = "yearly"
    CUSTOM = "custom"


class DateOverflow(str, Enum):
    ROLLOVER = "rollover"
    CLAMP = "clamp"


@dataclass(frozen=True)
class OneTimeRule:
    kind = RecurrenceType.ONE_TIME


@dataclass(frozen=True)
class MonthlyRule:
    day: int
    kind = RecurrenceType.MONTHLY


@dataclass(frozen=True)
class YearlyRule:
    day: int
    month: int
    kind = RecurrenceType.YEARLY


@dataclass(frozen=True)
class CustomRule:
    kind = RecurrenceType.CUSTOM


RecurrenceRule = Union[OneTimeRule, MonthlyRule, YearlyRule, CustomRule]

GENERATABLE_TYPES = (RecurrenceType.MONTHLY, RecurrenceType.YEARLY)


def _check_day(day: Optional[int], kind: str) -> int:
    if day is None:
        raise RuleValidationError(f"A {kind} recurrence needs a day of month")
    if not 1 <= day <= 31:
        raise RuleValidationError(f"Recurrence day must be between 1 and 31, got {day}")
    return day


def _check_month(month: Optional[int]) -> int:
    if month is None:
        raise RuleValidationError("A yearly recurrence needs a month")
    if not 1 <= month <= 12:
        raise RuleValidationError(f"Recurrence month must be between 1 and 12, got {month}")
    return month


def rule_from_fields(
    recurrence_type: Optional[str],
    recurrence_day: Optional[int] = None,
    recurrence_month: Optional[int] = None
) -> RecurrenceRule:
    """Build a rule from the persisted bill columns. Missing type means one-time."""
    try:
        kind = RecurrenceType(recurrence_type or RecurrenceType.ONE_TIME)
    except ValueError:
        raise RuleValidationError(f"Unknown recurrence type '{recurrence_type}'")

    if kind == RecurrenceType.ONE_TIME:
        return OneTimeRule()
    if kind == RecurrenceType.MONTHLY:
        return MonthlyRule(day=_check_day(recurrence_day, kind.value))
    if kind == RecurrenceType.YEARLY:
        return YearlyRule(day=_check_day(recurrence_day, kind.value), month=_check_month(recurrence_month))
    return CustomRule()


def build_date(year: int, month: int, day: int, overflow: DateOverflow = DateOverflow.ROLLOVER) -> date:
    """
    Construct a date where ``month`` may run past 12 (carried into ``year``)
    and ``day`` may exceed the month's length (handled per ``overflow``).
    """
    year += (month - 1) // 12
    month = (month - 1) % 12 + 1
    first = date(year, month, 1)
    if overflow == DateOverflow.CLAMP:
        return first + relativedelta(day=day)
    return first + timedelta(days=day - 1)


def compute_initial_due_date(
    rule: RecurrenceRule,
    reference_date: date,
    overflow: DateOverflow = DateOverflow.ROLLOVER
) -> Optional[date]:
    """
    First due date on or after ``reference_date``.
    One-time and custom rules have no derivable date; the caller supplies one.
    """
    if isinstance(rule, (OneTimeRule, CustomRule)):
        return None
    if isinstance(rule, MonthlyRule):
        candidate = build_date(reference_date.year, reference_date.month, rule.day, overflow)
        if candidate < reference_date:
            candidate = build_date(reference_date.year, reference_date.month + 1, rule.day, overflow)
        return candidate
    if isinstance(rule, YearlyRule):
        candidate = build_date(reference_date.year, rule.month, rule.day, overflow)
        if candidate < reference_date:
            candidate = build_date(reference_date.year + 1, rule.month, rule.day, overflow)
        return candidate
    raise TypeError(f"Unhandled recurrence rule: {rule!r}")


def compute_next_due_date(
    current_due_date: date,
    rule: RecurrenceRule,
    overflow: DateOverflow = DateOverflow.ROLLOVER
) -> Optional[date]:
    """The occurrence after ``current_due_date``, or None when the rule has no successor."""
    if isinstance(rule, (OneTimeRule, CustomRule)):
        return None
    if isinstance(rule, MonthlyRule):
        return build_date(current_due_date.year, current_due_date.month + 1, rule.day, overflow)
    if isinstance(rule, YearlyRule):
        return build_date(current_due_date.year + 1, rule.month, rule.day, overflow)
    raise TypeError(f"Unhandled recurrence rule: {rule!r}")
