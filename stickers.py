"""stickers.py -- per-user sticker collections."""

from __future__ import annotations

from errors import ValidationError


class StickerService:
    def __init__(self, store):
        self.store = store

    def add(self, user_id: str, sticker) -> list:
        if not sticker:
            raise ValidationError("Missing sticker")
        stickers = self.store.load("stickers")
        mine = stickers.setdefault(user_id, [])
        mine.append(sticker)
        self.store.save("stickers", stickers)
        return list(mine)

    def list(self, user_id: str) -> list:
        return list(self.store.load("stickers").get(user_id) or [])
