"""Règles de fraîcheur du cache de métadonnées."""
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional

from mediashelf.config import Config
from mediashelf.core.models import utcnow


class StalenessPolicy:
    """Évalue si un enregistrement du cache doit être rafraîchi."""

    def __init__(self, refresh_days: int = 7, clock: Callable[[], datetime] = utcnow):
        self.refresh_window = timedelta(days=refresh_days)
        self.clock = clock

    @classmethod
    def from_config(cls, config: Config) -> "StalenessPolicy":
        return cls(refresh_days=config.metadata.refresh_days)

    def is_stale(self, record) -> bool:
        """Absent, ou plus vieux que la fenêtre de rafraîchissement."""
        if record is None:
            return True
        last_updated: Optional[datetime] = getattr(record, "last_updated", None)
        if last_updated is None:
            return True
        if last_updated.tzinfo is not None:
            last_updated = last_updated.replace(tzinfo=None) - last_updated.utcoffset()
        return self.clock() - last_updated >= self.refresh_window

    def episode_needs_work(self, record) -> bool:
        """Un épisode frais mais sans vignette doit quand même être traité."""
        if record is None:
            return True
        if not record.still_data:
            return True
        return self.is_stale(record)

    def show_needs_work(self, show_record, episode_records: Iterable) -> bool:
        # Show-level freshness does not look at the poster
        if self.is_stale(show_record):
            return True
        return any(self.episode_needs_work(record) for record in episode_records)

    def movie_is_fresh(self, record) -> bool:
        return record is not None and not self.is_stale(record) and bool(record.poster_data)
