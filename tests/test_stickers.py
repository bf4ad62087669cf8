import json

import pytest

from chatmedia.stickers import PENDING_KEY, StickerPackError, StickerPacks
from chatmedia.store import SettingsStore

PACK = {"name": "Cats", "author": "someone", "price": "0", "stickers": [{"hash": "e301"}]}


@pytest.fixture
def settings(tmp_path):
    return SettingsStore(tmp_path / "settings.db")


@pytest.fixture
def packs(settings):
    return StickerPacks(settings)


def test_settings_roundtrip(settings):
    assert settings.get("missing") is None
    settings.set("k", b"v1")
    settings.set("k", b"v2")
    assert settings.get("k") == b"v2"


def test_pending_empty_without_setting(packs):
    assert packs.pending() == {}


def test_add_pending_marks_status(packs, settings):
    packs.add_pending(7, PACK)
    assert packs.pending() == {7: {**PACK, "status": "pending"}}
    stored = json.loads(settings.get(PENDING_KEY))
    assert stored == {"7": PACK}


def test_add_pending_twice_fails(packs):
    packs.add_pending(7, PACK)
    with pytest.raises(StickerPackError, match="already pending"):
        packs.add_pending(7, PACK)


def test_remove_pending(packs):
    packs.add_pending(7, PACK)
    packs.add_pending(8, PACK)
    packs.remove_pending(7)
    assert list(packs.pending()) == [8]


def test_remove_missing_is_noop(packs, settings):
    packs.remove_pending(99)
    assert settings.get(PENDING_KEY) is None
