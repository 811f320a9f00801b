"""
Diagnostic session persistence.

Lets the CLI interrupt and resume a placement run. Sessions are stored as
JSON files named {session_id}.json in the configured diagnostic_session_dir.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from datetime import datetime, timedelta
from pathlib import Path

from loguru import logger

from mastery_engine.adaptive.diagnostic import DiagnosticState
from mastery_engine.core.errors import InvalidInputError
from mastery_engine.core.mastery import ensure_utc, utcnow


class DiagnosticSessionStore:
    """
    Manages diagnostic session files.

    Only in-progress, non-expired sessions are offered for resume.
    """

    def __init__(
        self,
        session_dir: Path | str,
        expiry_hours: int = 24,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session_dir = Path(session_dir).expanduser()
        self.session_dir.mkdir(parents=True, exist_ok=True)
        self.expiry_hours = expiry_hours
        self._clock = clock

    def _path(self, session_id: str) -> Path:
        return self.session_dir / f"{session_id}.json"

    def is_expired(self, state: DiagnosticState) -> bool:
        """Check if a session was last saved longer ago than the expiry window."""
        if not state.last_saved_at:
            return True
        last_saved = ensure_utc(datetime.fromisoformat(state.last_saved_at))
        return self._clock() - last_saved > timedelta(hours=self.expiry_hours)

    def save(self, state: DiagnosticState) -> Path:
        """Save session state to disk."""
        state.last_saved_at = self._clock().isoformat()
        filepath = self._path(state.session_id)

        with open(filepath, "w", encoding="utf-8") as f:
            json.dump(state.to_dict(), f, indent=2)

        logger.debug(f"Saved diagnostic session {state.session_id} to {filepath}")
        return filepath

    def _read(self, filepath: Path) -> DiagnosticState | None:
        try:
            with open(filepath, "r", encoding="utf-8") as f:
                data = json.load(f)
            return DiagnosticState.from_dict(data)
        except (json.JSONDecodeError, InvalidInputError) as e:
            logger.warning(f"Ignoring unreadable diagnostic session {filepath.name}: {e}")
            return None

    def load(self, session_id: str) -> DiagnosticState | None:
        """Load a specific session by ID."""
        filepath = self._path(session_id)
        if not filepath.exists():
            return None
        return self._read(filepath)

    def list_sessions(self) -> list[DiagnosticState]:
        """List all non-expired sessions, most recently saved first."""
        sessions = []
        for filepath in self.session_dir.glob("*.json"):
            state = self._read(filepath)
            if state is not None and not self.is_expired(state):
                sessions.append(state)
        return sorted(sessions, key=lambda s: s.last_saved_at or "", reverse=True)

    def get_latest(self, learner_key: tuple[str, str] | None = None) -> DiagnosticState | None:
        """Most recent resumable session, optionally for one learner."""
        for state in self.list_sessions():
            if state.is_complete:
                continue
            if learner_key is not None and state.learner.key != learner_key:
                continue
            return state
        return None

    def delete(self, session_id: str) -> bool:
        """Delete a session file."""
        filepath = self._path(session_id)
        if filepath.exists():
            filepath.unlink()
            return True
        return False

    def cleanup_expired(self) -> int:
        """Remove expired, finished and corrupted session files."""
        removed = 0
        for filepath in self.session_dir.glob("*.json"):
            state = self._read(filepath)
            if state is None or state.is_complete or self.is_expired(state):
                filepath.unlink()
                removed += 1
        if removed:
            logger.info(f"Removed {removed} stale diagnostic sessions")
        return removed
