"""JSON-file-backed implementation of SeenOrderRepository."""

from __future__ import annotations

import json
from pathlib import Path

from rxquote.domain.repository.seen_order_repository import SeenOrderRepository


class JsonSeenOrderRepository(SeenOrderRepository):

    def __init__(self, file_path: Path) -> None:
        self._file_path = file_path
        self._ensure_file()

    def load(self) -> set[str]:
        return {str(order_id) for order_id in self._load_raw()}

    def add(self, order_ids: set[str]) -> None:
        merged = self.load() | {str(order_id) for order_id in order_ids}
        self._file_path.write_text(
            json.dumps(sorted(merged), indent=2) + "\n", encoding="utf-8"
        )

    def _load_raw(self) -> list:
        try:
            raw = json.loads(self._file_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            return []
        return raw if isinstance(raw, list) else []

    def _ensure_file(self) -> None:
        if not self._file_path.exists():
            self._file_path.parent.mkdir(parents=True, exist_ok=True)
            self._file_path.write_text("[]", encoding="utf-8")
