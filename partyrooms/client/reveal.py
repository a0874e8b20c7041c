"""Decides exactly once per concluded round when the result surface opens."""

from __future__ import annotations


class RevealTracker:
    def __init__(self, terminal_statuses: frozenset[str] = frozenset({"revealed"})) -> None:
        self.terminal_statuses = terminal_statuses
        self.seen_round: str | None = None
        self.result_open = False

    def observe(self, round_key: str | None, status: str | None) -> bool:
        """Feed the current round of a fresh snapshot; True when the result surface just opened."""
        if round_key is None:
            return False
        if status in self.terminal_statuses:
            if round_key != self.seen_round:
                self.seen_round = round_key
                self.result_open = True
                return True
            return False
        self.result_open = False
        return False

    def dismiss(self) -> None:
        self.result_open = False
