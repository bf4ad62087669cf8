"""Pending sticker packs, kept as a JSON map in the settings store."""

from __future__ import annotations

import json
from typing import Any

from chatmedia.store import SettingsStore

PENDING_KEY = "stickers/packs-pending"
STATUS_PENDING = "pending"


class StickerPackError(Exception):
    pass


class StickerPacks:
    def __init__(self, settings: SettingsStore) -> None:
        self.settings = settings

    def _load(self) -> dict[int, dict[str, Any]]:
        raw = self.settings.get(PENDING_KEY)
        if raw is None:
            return {}
        # JSON object keys are always strings
        return {int(k): v for k, v in json.loads(raw).items()}

    def _save(self, packs: dict[int, dict[str, Any]]) -> None:
        body = json.dumps({str(k): v for k, v in packs.items()}, sort_keys=True)
        self.settings.set(PENDING_KEY, body.encode("utf-8"))

    def add_pending(self, pack_id: int, pack: dict[str, Any]) -> None:
        packs = self._load()
        if pack_id in packs:
            raise StickerPackError("sticker pack is already pending")
        packs[pack_id] = pack
        self._save(packs)

    def pending(self) -> dict[int, dict[str, Any]]:
        return {pid: {**pack, "status": STATUS_PENDING} for pid, pack in self._load().items()}

    def remove_pending(self, pack_id: int) -> None:
        packs = self._load()
        if pack_id not in packs:
            return
        del packs[pack_id]
        self._save(packs)
