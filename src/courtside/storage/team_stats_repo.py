"""Repository for per-team historical stats (Teams table)."""
from __future__ import annotations

import logging
import re
from typing import Optional

from pydantic import ValidationError

from courtside.strategies.context import TeamStats

from .models import TEAMS_TABLE, TeamRecord
from .record_store import RecordStoreClient

logger = logging.getLogger(__name__)


def parse_form(raw: Optional[str]) -> Optional[tuple[str, ...]]:
    """Parse "WLWWL" or "W, L, W" into ("W", "L", "W", ...)."""
    if raw is None:
        return None
    results = tuple(r.upper() for r in re.findall(r"[WLwl]", raw))
    return results or None


class TeamStatsRepository:
    """Loads TeamStats for every team with a Team ID."""

    def __init__(self, store: RecordStoreClient) -> None:
        self._store = store

    async def get_all(self) -> list[TeamStats]:
        rows = await self._store.list_records(TEAMS_TABLE)
        stats = []
        for row in rows:
            try:
                record = TeamRecord.from_record(row)
            except ValidationError as e:
                logger.warning(f"Skipping malformed team {row.get('id')}: {e}")
                continue
            if not record.team_id:
                continue
            stats.append(
                TeamStats(
                    team_id=record.team_id,
                    name=record.name,
                    win_rate=record.win_rate,
                    avg_points_for=record.avg_points_for,
                    games_played=record.games_played,
                    recent_form=parse_form(record.recent_form),
                )
            )
        return stats
