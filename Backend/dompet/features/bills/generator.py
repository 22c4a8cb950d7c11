import logging
from datetime import date, datetime, timedelta
from typing import List, Sequence

from dompet.features.bills.exceptions import RuleValidationError, StorageError
from dompet.features.bills.models import Bill
from dompet.features.bills.recurrence import (
    DateOverflow,
    GENERATABLE_TYPES,
    RecurrenceRule,
    compute_next_due_date,
    rule_from_fields,
)
from dompet.features.bills.schemas import GenerationResult, TemplateGenerationResult
from dompet.features.bills.store import BillInstanceStore

logger = logging.getLogger(__name__)

DEFAULT_HORIZON_DAYS = 90

# Fields an instance inherits from its template
TEMPLATE_FIELDS = (
    "user_id",
    "bill_name",
    "payer_name",
    "destination_account",
    "amount",
    "category",
    "recurrence_type",
    "recurrence_day",
    "recurrence_month",
    "sync_to_google_calendar",
)


def _snapshot(template: Bill) -> dict:
    # A failed insert rolls the session back and expires every loaded row,
    # so templates are read once before any write happens.
    values = {field: getattr(template, field) for field in TEMPLATE_FIELDS}
    values.update(
        id=template.id,
        due_date=template.due_date,
        is_template=template.is_template,
        status=template.status,
    )
    return values


class RecurringBillGenerator:
    """
    Materializes concrete bill instances from active templates for a rolling
    horizon. Safe to re-run: an instance is only staged when none exists yet
    for the same (bill_name, user_id, due_date).

    Concurrent runs against the same templates are not mutually excluded;
    two runs may both pass the existence check before either commits.
    """

    def __init__(self, store: BillInstanceStore, overflow: DateOverflow = DateOverflow.ROLLOVER):
        self.store = store
        self.overflow = overflow

    def _next(self, current: date, rule: RecurrenceRule):
        return compute_next_due_date(current, rule, self.overflow)

    async def _starting_point(self, template: dict, rule: RecurrenceRule, today: date):
        latest = await self.store.find_latest_by_name(template["bill_name"], template["user_id"])
        if latest is not None:
            return self._next(latest.due_date, rule)
        if template["due_date"] > today:
            return template["due_date"]
        return self._next(template["due_date"], rule)

    def _stage(self, template: dict, rule: RecurrenceRule, due: date) -> Bill:
        values = {field: template[field] for field in TEMPLATE_FIELDS}
        return Bill(
            **values,
            due_date=due,
            next_due_date=self._next(due, rule),
            is_template=False,
            status="active",
        )

    async def _generate_for_template(self, template: dict, today: date, until: date) -> int:
        rule = rule_from_fields(
            template["recurrence_type"], template["recurrence_day"], template["recurrence_month"]
        )
        candidate = await self._starting_point(template, rule, today)

        staged: List[Bill] = []
        while candidate is not None and candidate <= until:
            if not await self.store.exists_for_date(template["bill_name"], template["user_id"], candidate):
                staged.append(self._stage(template, rule, candidate))
            candidate = self._next(candidate, rule)

        return await self.store.insert_many(staged)

    async def generate(
        self,
        templates: Sequence[Bill],
        horizon_days: int = DEFAULT_HORIZON_DAYS,
        now: date = None
    ) -> GenerationResult:
        if now is None:
            now = date.today()
        elif isinstance(now, datetime):
            now = now.date()
        until = now + timedelta(days=horizon_days)

        generatable = [t.value for t in GENERATABLE_TYPES]
        snapshots = [_snapshot(t) for t in templates]

        result = GenerationResult()
        for template in snapshots:
            name = template["bill_name"]
            if not template["is_template"] or template["status"] != "active":
                continue
            if template["recurrence_type"] not in generatable:
                logger.debug(f"[Generator] Skipping '{name}' ({template['recurrence_type']}).")
                continue

            outcome = TemplateGenerationResult(
                template_id=template["id"],
                bill_name=name,
                user_id=template["user_id"],
                status="ok",
            )
            try:
                outcome.generated = await self._generate_for_template(template, now, until)
                if outcome.generated:
                    logger.info(f"[Generator] Generated {outcome.generated} bills for template '{name}'")
            except RuleValidationError as e:
                logger.warning(f"[Generator] Template '{name}' ({template['id']}) has an invalid rule: {e}")
                outcome.status, outcome.error_kind, outcome.error = "failed", e.error_kind, str(e)
            except StorageError as e:
                logger.error(f"[Generator] Template '{name}' ({template['id']}) failed: {e}")
                outcome.status, outcome.error_kind, outcome.error = "failed", e.error_kind, str(e)

            result.generated_count += outcome.generated
            result.per_template_results.append(outcome)

        return result
