"""
Repository for strategies and their triggers.

Reads the Strategies and Triggers tables, parses the JSON columns into the
structured strategy model and caches the result.

Parsing policy:
    A malformed condition, rule or win requirement is dropped with a warning;
    the rest of the strategy still loads. A trigger whose conditions all fail
    to parse keeps an empty condition list and therefore never fires.
"""
from __future__ import annotations

import json
import logging
import time
from collections import defaultdict
from typing import Any, Callable, Optional

from pydantic import ValidationError

from courtside.strategies.models import (
    BetSide,
    Condition,
    ConditionOperator,
    OddsRequirement,
    OddsType,
    Rule,
    RuleType,
    Strategy,
    Trigger,
    TriggerMode,
    TriggerRole,
    WinRequirement,
    WinRequirementType,
)

from .models import STRATEGIES_TABLE, TRIGGERS_TABLE, StrategyRecord, TriggerRecord
from .record_store import RecordStoreClient

logger = logging.getLogger(__name__)


def _load_json_list(raw: Optional[str], column: str, owner: str) -> list[Any]:
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning(f"{owner}: invalid {column}: {e}")
        return []
    if not isinstance(value, list):
        logger.warning(f"{owner}: {column} is not a list")
        return []
    return value


def parse_conditions(raw: Optional[str], owner: str = "trigger") -> tuple[Condition, ...]:
    conditions = []
    for item in _load_json_list(raw, "Conditions JSON", owner):
        try:
            conditions.append(
                Condition(
                    field=str(item["field"]),
                    operator=ConditionOperator.parse(item["operator"]),
                    value=item.get("value"),
                    value2=item.get("value2"),
                )
            )
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"{owner}: skipping condition {item!r}: {e}")
    return tuple(conditions)


def parse_rules(raw: Optional[str], owner: str = "strategy") -> tuple[Rule, ...]:
    rules = []
    for item in _load_json_list(raw, "Rules JSON", owner):
        try:
            rules.append(Rule(rule_type=RuleType(item["type"]), value=item.get("value")))
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"{owner}: skipping rule {item!r}: {e}")
    return tuple(rules)


def parse_win_requirements(raw: Optional[str], owner: str = "strategy") -> tuple[WinRequirement, ...]:
    requirements = []
    for item in _load_json_list(raw, "Win Requirements JSON", owner):
        try:
            value = item.get("value")
            requirements.append(
                WinRequirement(
                    requirement_type=WinRequirementType(item["type"]),
                    value=float(value) if value is not None else None,
                )
            )
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"{owner}: skipping win requirement {item!r}: {e}")
    return tuple(requirements)


def parse_expiry(raw: Optional[str]) -> Optional[int]:
    """Parse "2:20" or "140" into seconds remaining in Q4."""
    if raw is None or str(raw).strip() == "":
        return None
    text = str(raw).strip()
    try:
        if ":" in text:
            minutes, seconds = text.split(":", 1)
            return int(minutes) * 60 + int(seconds)
        return int(float(text))
    except ValueError:
        logger.warning(f"Invalid Q4 expiry time: {raw!r}")
        return None


def build_strategy(record: StrategyRecord, triggers: list[Trigger]) -> Strategy:
    owner = f"Strategy '{record.name}'"

    odds = None
    if record.odds_type and record.odds_value is not None:
        try:
            odds = OddsRequirement(
                odds_type=OddsType(record.odds_type.strip().lower()),
                bet_side=BetSide.parse(record.bet_side or BetSide.LEADING_TEAM.value),
                value=float(record.odds_value),
            )
        except ValueError as e:
            logger.warning(f"{owner}: invalid odds requirement: {e}")

    try:
        mode = TriggerMode(record.trigger_mode.strip().lower())
    except ValueError:
        logger.warning(f"{owner}: unknown trigger mode {record.trigger_mode!r}, using sequential")
        mode = TriggerMode.SEQUENTIAL

    webhooks = tuple(
        str(url) for url in _load_json_list(record.discord_webhooks_json, "Discord Webhooks JSON", owner)
        if url
    )

    strategy = Strategy(
        id=record.id,
        name=record.name,
        description=record.description,
        triggers=tuple(sorted(triggers, key=lambda t: t.order)),
        mode=mode,
        is_active=record.is_active,
        odds_requirement=odds,
        rules=parse_rules(record.rules_json, owner),
        win_requirements=parse_win_requirements(record.win_requirements_json, owner),
        expiry_cutoff_seconds=parse_expiry(record.expiry_time_q4),
        discord_webhooks=webhooks,
    )
    if record.is_two_stage and not strategy.has_close_trigger:
        logger.warning(f"{owner}: marked two-stage but has no close trigger")
    return strategy


def build_trigger(record: TriggerRecord) -> Trigger:
    role_text = record.entry_or_close.strip().lower()
    role = TriggerRole.CLOSE if role_text == TriggerRole.CLOSE.value else TriggerRole.ENTRY
    return Trigger(
        id=record.id,
        name=record.name,
        order=record.order,
        role=role,
        conditions=parse_conditions(record.conditions_json, f"Trigger '{record.name}'"),
    )


class StrategyRepository:
    """
    Cached access to strategies.

    Usage:
        repo = StrategyRepository(store)
        strategies = await repo.get_strategies()
    """

    def __init__(
        self,
        store: RecordStoreClient,
        cache_ttl_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store = store
        self._ttl = cache_ttl_seconds
        self._clock = clock
        self._cache: Optional[list[Strategy]] = None
        self._loaded_at = 0.0

    def invalidate(self) -> None:
        self._cache = None

    async def get_strategies(self, force: bool = False) -> list[Strategy]:
        """
        Return all strategies, reloading when the cache is older than the TTL.

        A failed reload returns the previous strategies if there are any.
        """
        fresh = self._cache is not None and self._clock() - self._loaded_at < self._ttl
        if fresh and not force:
            return self._cache

        try:
            strategies = await self._load()
        except Exception as e:
            if self._cache is None:
                raise
            logger.error(f"Strategy reload failed, keeping {len(self._cache)} cached: {e}")
            return self._cache

        self._cache = strategies
        self._loaded_at = self._clock()
        return strategies

    async def _load(self) -> list[Strategy]:
        strategy_rows = await self._store.list_records(STRATEGIES_TABLE)
        trigger_rows = await self._store.list_records(TRIGGERS_TABLE)

        triggers_by_strategy: dict[str, list[Trigger]] = defaultdict(list)
        for row in trigger_rows:
            try:
                record = TriggerRecord.from_record(row)
            except ValidationError as e:
                logger.warning(f"Skipping malformed trigger {row.get('id')}: {e}")
                continue
            trigger = build_trigger(record)
            for strategy_id in record.strategy_ids:
                triggers_by_strategy[strategy_id].append(trigger)

        strategies = []
        for row in strategy_rows:
            try:
                record = StrategyRecord.from_record(row)
            except ValidationError as e:
                logger.warning(f"Skipping malformed strategy {row.get('id')}: {e}")
                continue
            strategies.append(build_strategy(record, triggers_by_strategy.get(record.id, [])))

        logger.info(f"Loaded {len(strategies)} strategies, {len(trigger_rows)} triggers")
        return strategies
