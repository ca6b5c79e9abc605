"""
Strategy scheduler.

Decides which trigger(s) of a strategy fire for the current game state.

Modes:
    SEQUENTIAL: triggers fire strictly in order. Per cycle only the next
        pending trigger is evaluated: the first entry trigger while no signal
        exists, then the first close trigger while the signal is monitoring.
        A close trigger can therefore never fire before its entry.
    PARALLEL: every trigger is evaluated every cycle and any number may fire.
        The lifecycle drops fires that do not apply to the signal's stage.

A strategy is skipped when inactive, when the game is not live/halftime, or
when a gating rule rejects the game state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from courtside.ingestion.models import GameSnapshot

from .context import EvaluationContext, MatchupStats, TriggerSnapshot, build_context
from .evaluator import TriggerEvaluation, evaluate_trigger
from .models import Strategy, Trigger, TriggerMode, TriggerRole
from .rules import passes_rules

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SignalProgress:
    """
    What the scheduler needs to know about an existing signal.

    Attributes:
        awaiting_close: Signal is monitoring (entry fired, close pending)
        fired_trigger_ids: Triggers already fired for this signal
        last_snapshot: Snapshot captured by the most recent fire
    """
    awaiting_close: bool
    fired_trigger_ids: frozenset[str] = frozenset()
    last_snapshot: Optional[TriggerSnapshot] = None


@dataclass(frozen=True)
class TriggerFire:
    """A trigger whose conditions all passed this cycle."""
    strategy: Strategy
    trigger: Trigger
    evaluation: TriggerEvaluation
    context: EvaluationContext

    @property
    def role(self) -> TriggerRole:
        return self.trigger.role


@dataclass
class ScheduleResult:
    strategy: Strategy
    fires: list[TriggerFire] = field(default_factory=list)
    evaluations: list[TriggerEvaluation] = field(default_factory=list)
    skipped_reason: Optional[str] = None

    @property
    def skipped(self) -> bool:
        return self.skipped_reason is not None


def _next_pending(strategy: Strategy, progress: Optional[SignalProgress]) -> Optional[Trigger]:
    if progress is None:
        role = TriggerRole.ENTRY
        fired: frozenset[str] = frozenset()
    elif progress.awaiting_close:
        role = TriggerRole.CLOSE
        fired = progress.fired_trigger_ids
    else:
        return None

    for trigger in strategy.sorted_triggers:
        if trigger.role == role and trigger.id not in fired:
            return trigger
    return None


def schedule(
    strategy: Strategy,
    game: GameSnapshot,
    progress: Optional[SignalProgress] = None,
    stats: Optional[MatchupStats] = None,
) -> ScheduleResult:
    """
    Evaluate a strategy against the current game state.

    Args:
        strategy: Strategy to evaluate
        game: Current snapshot
        progress: State of the existing signal for (strategy, game), if any
        stats: Optional per-team stats for head-to-head fields

    Returns:
        ScheduleResult listing fired triggers (possibly empty)
    """
    result = ScheduleResult(strategy=strategy)

    if not strategy.is_active:
        result.skipped_reason = "inactive"
        return result

    if not game.is_in_play:
        result.skipped_reason = f"game status {game.status.value}"
        return result

    check = passes_rules(strategy.rules, game)
    if not check.passed:
        result.skipped_reason = check.reason
        logger.debug(f"[{strategy.name}] skipped for {game.id}: {check.reason}")
        return result

    # Prior-trigger fields only apply to sequential strategies
    prior = None
    if progress is not None and strategy.mode == TriggerMode.SEQUENTIAL:
        prior = progress.last_snapshot
    context = build_context(game, stats, prior)

    if strategy.mode == TriggerMode.SEQUENTIAL:
        candidates = [t for t in [_next_pending(strategy, progress)] if t is not None]
    else:
        candidates = strategy.sorted_triggers

    for trigger in candidates:
        evaluation = evaluate_trigger(trigger, context)
        result.evaluations.append(evaluation)
        if evaluation.passed:
            result.fires.append(
                TriggerFire(strategy=strategy, trigger=trigger, evaluation=evaluation, context=context)
            )
            if strategy.mode == TriggerMode.SEQUENTIAL:
                break

    return result
