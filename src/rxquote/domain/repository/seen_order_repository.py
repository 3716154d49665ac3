"""Abstract durable store for order ids an actor has already been alerted about."""

from __future__ import annotations

from abc import ABC, abstractmethod


class SeenOrderRepository(ABC):

    @abstractmethod
    def load(self) -> set[str]:
        """Return every order id already seen."""

    @abstractmethod
    def add(self, order_ids: set[str]) -> None:
        """Mark *order_ids* as seen, keeping the ones already stored."""
