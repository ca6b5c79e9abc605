"""
Signal lifecycle state machine.

States:
    monitoring -> watching -> bet_taken -> won / lost / pushed
                           -> expired
    any non-final          -> closed (manual)

Transitions:
    entry fire   no signal for (strategy, game): create it in monitoring if
                 the strategy has a close trigger, otherwise in watching
    close fire   monitoring -> watching, capture close snapshot
    update       watching: expiry first, then the odds requirement. Past the
                 cutoff -> expired. Requirement met -> bet_taken with the
                 observed odds captured. No requirement -> bet_taken at once.
    game final   monitoring/watching -> expired; bet_taken -> settled

Index ownership:
    _active holds ActiveSignal records for monitoring/watching signals.
    _placed holds bet_taken signals until the game is final.
    _spent remembers keys whose signal left tracking, so a (strategy, game)
    pair produces at most one signal per game.

Every method is synchronous, so on a single event loop each call is atomic.
The engine additionally serializes calls per game with KeyedLock.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Iterable, Mapping, Optional

from courtside.ingestion.models import GameSnapshot
from courtside.strategies.context import TriggerSnapshot, capture_trigger_snapshot
from courtside.strategies.models import Strategy, TriggerRole
from courtside.strategies.scheduler import SignalProgress, TriggerFire

from .odds import DEFAULT_EXPIRY_CUTOFF_SECONDS, check_odds, is_past_expiry
from .settlement import settle
from .signals import EventKind, Signal, SignalEvent, SignalStatus, new_signal_id

logger = logging.getLogger(__name__)

SignalKey = tuple[str, str]


@dataclass
class LifecycleConfig:
    expiry_cutoff_seconds: int = DEFAULT_EXPIRY_CUTOFF_SECONDS


@dataclass
class ActiveSignal:
    """
    Mutable tracking record for a monitoring/watching signal.

    Attributes:
        signal: The signal being tracked
        fired_trigger_ids: Triggers fired so far for this signal
        last_snapshot: Snapshot from the most recent fire
        expiry_cutoff_seconds: Q4 clock cutoff for this signal
    """
    signal: Signal
    fired_trigger_ids: set[str] = field(default_factory=set)
    last_snapshot: Optional[TriggerSnapshot] = None
    expiry_cutoff_seconds: int = DEFAULT_EXPIRY_CUTOFF_SECONDS

    @property
    def stage(self) -> SignalStatus:
        return self.signal.status

    def progress(self) -> SignalProgress:
        return SignalProgress(
            awaiting_close=self.signal.status == SignalStatus.MONITORING,
            fired_trigger_ids=frozenset(self.fired_trigger_ids),
            last_snapshot=self.last_snapshot,
        )


class SignalLifecycle:
    """
    Owns the active-signal index and advances signals through their stages.

    Usage:
        lifecycle = SignalLifecycle()
        event = lifecycle.on_fire(fire, game)
        events = lifecycle.check_watching(game, strategies)
    """

    def __init__(
        self,
        config: Optional[LifecycleConfig] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config or LifecycleConfig()
        self._clock = clock
        self._active: dict[SignalKey, ActiveSignal] = {}
        self._placed: dict[SignalKey, Signal] = {}
        self._spent: set[SignalKey] = set()

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get(self, strategy_id: str, game_id: str) -> Optional[ActiveSignal]:
        return self._active.get((strategy_id, game_id))

    def progress(self, strategy_id: str, game_id: str) -> Optional[SignalProgress]:
        """Scheduler view of the signal for (strategy, game), if one exists."""
        active = self._active.get((strategy_id, game_id))
        if active is not None:
            return active.progress()
        key = (strategy_id, game_id)
        if key in self._placed or key in self._spent:
            return SignalProgress(awaiting_close=False)
        return None

    def active_signals(self, game_id: Optional[str] = None) -> list[ActiveSignal]:
        return [
            a for a in self._active.values()
            if game_id is None or a.signal.game_id == game_id
        ]

    def placed_signals(self, game_id: Optional[str] = None) -> list[Signal]:
        return [
            s for s in self._placed.values()
            if game_id is None or s.game_id == game_id
        ]

    def count(self) -> dict[str, int]:
        counts = {
            SignalStatus.MONITORING.value: 0,
            SignalStatus.WATCHING.value: 0,
            SignalStatus.BET_TAKEN.value: len(self._placed),
        }
        for active in self._active.values():
            counts[active.stage.value] += 1
        return counts

    # -------------------------------------------------------------------------
    # Trigger fires
    # -------------------------------------------------------------------------

    def on_fire(self, fire: TriggerFire, game: GameSnapshot) -> Optional[SignalEvent]:
        if fire.role == TriggerRole.ENTRY:
            return self.on_entry(fire, game)
        return self.on_close(fire, game)

    def on_entry(self, fire: TriggerFire, game: GameSnapshot) -> Optional[SignalEvent]:
        """
        Create a signal for an entry fire.

        Returns:
            ENTRY event, or None if a signal for (strategy, game) already
            exists or existed earlier in this game
        """
        strategy = fire.strategy
        key = (strategy.id, game.id)
        if key in self._active or key in self._placed or key in self._spent:
            logger.debug(f"[{strategy.name}] entry for {game.id} ignored: signal exists")
            return None

        now = self._clock()
        snapshot = capture_trigger_snapshot(fire.trigger.id, fire.trigger.name, game, now)
        two_stage = strategy.has_close_trigger
        leader = game.leading_side
        signal = Signal(
            id=new_signal_id(),
            strategy_id=strategy.id,
            strategy_name=strategy.name,
            game_id=game.id,
            status=SignalStatus.MONITORING if two_stage else SignalStatus.WATCHING,
            created_at=now,
            entry_trigger_id=fire.trigger.id,
            entry_trigger_name=fire.trigger.name,
            entry_snapshot=snapshot,
            leading_team_at_trigger=leader if leader != "tie" else None,
            odds_requirement=strategy.odds_requirement,
            win_requirements=strategy.win_requirements,
            home_team=game.home_team,
            away_team=game.away_team,
            watching_at=None if two_stage else now,
        )
        cutoff = strategy.expiry_cutoff_seconds
        self._active[key] = ActiveSignal(
            signal=signal,
            fired_trigger_ids={fire.trigger.id},
            last_snapshot=snapshot,
            expiry_cutoff_seconds=cutoff if cutoff is not None else self._config.expiry_cutoff_seconds,
        )
        logger.info(
            f"[{strategy.name}] entry '{fire.trigger.name}' fired for {game.matchup} "
            f"Q{game.quarter} {game.time_remaining} -> {signal.status.value}"
        )
        return self._event(EventKind.ENTRY, signal, game, strategy, fire)

    def on_close(self, fire: TriggerFire, game: GameSnapshot) -> Optional[SignalEvent]:
        """
        Advance a monitoring signal to watching.

        Returns:
            CLOSE event, or None if no signal is monitoring for the pair
        """
        strategy = fire.strategy
        active = self._active.get((strategy.id, game.id))
        if active is None or active.stage != SignalStatus.MONITORING:
            logger.debug(f"[{strategy.name}] close for {game.id} ignored: not monitoring")
            return None

        now = self._clock()
        snapshot = capture_trigger_snapshot(fire.trigger.id, fire.trigger.name, game, now)
        signal = active.signal
        signal.status = SignalStatus.WATCHING
        signal.close_trigger_id = fire.trigger.id
        signal.close_trigger_name = fire.trigger.name
        signal.close_snapshot = snapshot
        signal.watching_at = now
        active.fired_trigger_ids.add(fire.trigger.id)
        active.last_snapshot = snapshot

        logger.info(
            f"[{strategy.name}] close '{fire.trigger.name}' fired for {game.matchup} "
            f"Q{game.quarter} {game.time_remaining} -> watching"
        )
        return self._event(EventKind.CLOSE, signal, game, strategy, fire)

    # -------------------------------------------------------------------------
    # Per-update checks
    # -------------------------------------------------------------------------

    def check_watching(
        self,
        game: GameSnapshot,
        strategies: Mapping[str, Strategy],
    ) -> list[SignalEvent]:
        """
        Run expiry and odds checks for every watching signal of a game.

        Expiry is checked first. A signal whose strategy is no longer loaded
        keeps the requirement captured at entry.
        """
        events = []
        for key, active in list(self._active.items()):
            signal = active.signal
            if signal.game_id != game.id or signal.status != SignalStatus.WATCHING:
                continue
            strategy = strategies.get(signal.strategy_id)

            if is_past_expiry(game, active.expiry_cutoff_seconds):
                events.append(self._expire(key, game, strategy))
                continue

            requirement = signal.odds_requirement
            if requirement is None:
                events.append(self._take_bet(key, game, strategy, None, None))
                continue

            satisfied, team, observed = check_odds(requirement, game, signal.leading_team_at_trigger)
            if satisfied:
                events.append(self._take_bet(key, game, strategy, team, observed))

        return events

    def on_game_final(
        self,
        game: GameSnapshot,
        strategies: Optional[Mapping[str, Strategy]] = None,
    ) -> list[SignalEvent]:
        """
        Resolve every signal of a finished game.

        Monitoring/watching signals never reached a bet and expire. Placed
        bets are settled against the final score.
        """
        strategies = strategies or {}
        events = []

        for key, active in list(self._active.items()):
            if active.signal.game_id == game.id:
                events.append(self._expire(key, game, strategies.get(key[0])))

        final_home, final_away = game.final_scores()
        for key, signal in list(self._placed.items()):
            if signal.game_id != game.id:
                continue
            settlement = settle(signal, final_home, final_away)
            now = self._clock()
            signal.status = settlement.result.status
            signal.result = settlement.result
            signal.result_summary = settlement.summary
            signal.final_home = final_home
            signal.final_away = final_away
            signal.settled_at = now
            del self._placed[key]
            self._spent.add(key)
            logger.info(
                f"[{signal.strategy_name}] settled {game.matchup}: "
                f"{settlement.result.value} ({settlement.summary})"
            )
            events.append(
                self._event(
                    EventKind.SETTLED, signal, game, strategies.get(key[0]),
                    result=settlement.result,
                )
            )

        return events

    def close_signal(
        self,
        strategy_id: str,
        game_id: str,
        game: Optional[GameSnapshot] = None,
        reason: str = "",
    ) -> Optional[SignalEvent]:
        """
        Manually terminate a tracked or placed signal.

        Returns:
            CLOSED event, or None if nothing is open for the pair
        """
        key = (strategy_id, game_id)
        active = self._active.pop(key, None)
        signal = active.signal if active else self._placed.pop(key, None)
        if signal is None:
            return None

        signal.status = SignalStatus.CLOSED
        signal.closed_at = self._clock()
        signal.notes = reason or "closed manually"
        self._spent.add(key)
        if game is not None:
            signal.final_home, signal.final_away = game.home_score, game.away_score
        logger.info(f"[{signal.strategy_name}] signal for {game_id} closed: {signal.notes}")
        return self._event(EventKind.CLOSED, signal, game or GameSnapshot(id=game_id))

    # -------------------------------------------------------------------------
    # Maintenance
    # -------------------------------------------------------------------------

    def restore(self, signals: Iterable[Signal]) -> int:
        """
        Rebuild the indexes from persisted open signals after a restart.

        Returns:
            Number of signals restored
        """
        restored = 0
        for signal in signals:
            key = signal.key
            if key in self._active or key in self._placed:
                continue
            if signal.status.is_tracking:
                fired = {signal.entry_trigger_id} if signal.entry_trigger_id else set()
                if signal.close_trigger_id:
                    fired.add(signal.close_trigger_id)
                self._active[key] = ActiveSignal(
                    signal=signal,
                    fired_trigger_ids=fired,
                    last_snapshot=signal.close_snapshot or signal.entry_snapshot,
                    expiry_cutoff_seconds=self._config.expiry_cutoff_seconds,
                )
            elif signal.status == SignalStatus.BET_TAKEN:
                self._placed[key] = signal
            else:
                continue
            restored += 1

        if restored:
            logger.info(f"Restored {restored} open signal(s)")
        return restored

    def apply_strategy_overrides(self, strategies: Mapping[str, Strategy]) -> None:
        """Refresh per-signal expiry cutoffs from reloaded strategies."""
        for (strategy_id, _), active in self._active.items():
            strategy = strategies.get(strategy_id)
            if strategy is not None and strategy.expiry_cutoff_seconds is not None:
                active.expiry_cutoff_seconds = strategy.expiry_cutoff_seconds

    def forget_game(self, game_id: str) -> None:
        """Drop spent keys for a game that is no longer cached."""
        self._spent = {k for k in self._spent if k[1] != game_id}

    def abandon_game(
        self,
        game_id: str,
        strategies: Optional[Mapping[str, Strategy]] = None,
    ) -> list[SignalEvent]:
        """
        Expire the tracking signals of a game whose feed went quiet.

        Placed bets stay indexed so a late final score can still settle
        them. Spent keys for the game are dropped.
        """
        strategies = strategies or {}
        events = []
        for key in [k for k in self._active if k[1] == game_id]:
            signal = self._active[key].signal
            signal.notes = "feed went quiet before the game finished"
            game = GameSnapshot(id=game_id, home_team=signal.home_team, away_team=signal.away_team)
            events.append(self._expire(key, game, strategies.get(key[0])))
        self.forget_game(game_id)
        return events

    def has_open_signals(self, game_id: str) -> bool:
        return any(k[1] == game_id for k in self._active) or any(
            k[1] == game_id for k in self._placed
        )

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _expire(
        self,
        key: SignalKey,
        game: GameSnapshot,
        strategy: Optional[Strategy],
    ) -> SignalEvent:
        active = self._active.pop(key)
        signal = active.signal
        signal.status = SignalStatus.EXPIRED
        signal.expired_at = self._clock()
        self._spent.add(key)
        logger.info(
            f"[{signal.strategy_name}] signal for {game.matchup} expired "
            f"at Q{game.quarter} {game.time_remaining}"
        )
        return self._event(EventKind.EXPIRED, signal, game, strategy)

    def _take_bet(
        self,
        key: SignalKey,
        game: GameSnapshot,
        strategy: Optional[Strategy],
        team: Optional[str],
        observed: Optional[float],
    ) -> SignalEvent:
        active = self._active.pop(key)
        signal = active.signal
        signal.status = SignalStatus.BET_TAKEN
        signal.bet_team = team
        signal.observed_odds = observed
        signal.bet_taken_at = self._clock()
        self._placed[key] = signal
        logger.info(
            f"[{signal.strategy_name}] bet taken for {game.matchup} "
            f"Q{game.quarter} {game.time_remaining}: {team or 'total'} at {observed}"
        )
        return self._event(EventKind.BET_TAKEN, signal, game, strategy)

    def _event(
        self,
        kind: EventKind,
        signal: Signal,
        game: GameSnapshot,
        strategy: Optional[Strategy] = None,
        fire: Optional[TriggerFire] = None,
        result=None,
    ) -> SignalEvent:
        return SignalEvent(
            kind=kind,
            signal=signal.copy(),
            game=game.copy(),
            strategy=strategy,
            trigger=fire.trigger if fire else None,
            matched=fire.evaluation.matched if fire else (),
            failed=fire.evaluation.failed if fire else (),
            result=result,
            timestamp=self._clock(),
        )
