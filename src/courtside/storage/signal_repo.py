"""
Repository for signals (persistence sink).

Every lifecycle event upserts the Signals row for the event's signal, keyed
by our own Signal ID. Store record ids are remembered after the first write
so later events PATCH without a lookup.
"""
from __future__ import annotations

import logging
from typing import Optional

from pydantic import ValidationError

from courtside.core.signals import EventKind, Signal, SignalEvent, SignalStatus

from .models import SIGNALS_TABLE, SignalRecord
from .record_store import RecordStoreClient

logger = logging.getLogger(__name__)

OPEN_STATUSES = (SignalStatus.MONITORING, SignalStatus.WATCHING, SignalStatus.BET_TAKEN)


def _quote(value: str) -> str:
    return "'" + value.replace("\\", "\\\\").replace("'", "\\'") + "'"


class SignalRepository:
    """
    Persists signals to the record store.

    Usage:
        repo = SignalRepository(store)
        engine = SignalEngine(sinks=[repo, ...])
        open_signals = await repo.list_open()
    """

    name = "signal_store"

    def __init__(self, store: RecordStoreClient) -> None:
        self._store = store
        self._record_ids: dict[str, str] = {}

    async def handle(self, event: SignalEvent) -> None:
        """Sink entry point: write the signal as of this event."""
        await self.save(event.signal, is_new=event.kind == EventKind.ENTRY)

    async def save(self, signal: Signal, is_new: bool = False) -> str:
        """
        Upsert a signal row.

        Args:
            signal: Signal to write
            is_new: Skip the lookup; the signal was just created

        Returns:
            Store record id
        """
        fields = SignalRecord.from_signal(signal).to_fields()
        record_id = self._record_ids.get(signal.id)
        if record_id is None and not is_new:
            record_id = await self._find_record_id(signal.id)

        if record_id is None:
            record = await self._store.create_record(SIGNALS_TABLE, fields)
            record_id = record["id"]
            logger.debug(f"Created signal row {record_id} for {signal.id}")
        else:
            await self._store.update_record(SIGNALS_TABLE, record_id, fields)

        self._record_ids[signal.id] = record_id
        return record_id

    async def _find_record_id(self, signal_id: str) -> Optional[str]:
        records = await self._store.list_records(
            SIGNALS_TABLE,
            filter_formula=f"{{Signal ID}} = {_quote(signal_id)}",
            max_records=1,
        )
        return records[0]["id"] if records else None

    async def list_open(self) -> list[Signal]:
        """Signals still monitoring, watching or awaiting settlement."""
        clauses = ", ".join(f"{{Status}} = {_quote(s.value)}" for s in OPEN_STATUSES)
        rows = await self._store.list_records(SIGNALS_TABLE, filter_formula=f"OR({clauses})")

        signals = []
        for row in rows:
            try:
                signal = SignalRecord.from_record(row).to_signal()
            except (ValidationError, ValueError, KeyError, TypeError) as e:
                logger.warning(f"Skipping unreadable signal row {row.get('id')}: {e}")
                continue
            self._record_ids[signal.id] = row["id"]
            signals.append(signal)
        return signals
