"""
joyrewards.services.collection_service — Sticker Collections
=============================================================

Active collection lookup, weighted sticker draws, the per-user inventory
and collection progress.  Selection math lives in
:mod:`joyrewards.engine.drops`; this module only loads rows and persists
results.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from datetime import date
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from joyrewards.constants import DEFAULT_RARITY_PERCENTAGES, RARITY_EMOJI
from joyrewards.database.models import Sticker, StickerCollection, UserSticker
from joyrewards.engine.drops import draw_one, effective_weights
from joyrewards.errors import EmptyCollection, NotFound

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CollectionProgress:
    collection_id: int
    owned: int
    total: int

    @property
    def percentage(self) -> int:
        if self.total <= 0:
            return 0
        return round(self.owned / self.total * 100)

    @property
    def is_complete(self) -> bool:
        return self.total > 0 and self.owned >= self.total

    def to_dict(self) -> dict[str, Any]:
        return {
            "collection_id": self.collection_id,
            "owned": self.owned,
            "total": self.total,
            "percentage": self.percentage,
            "is_complete": self.is_complete,
        }


@dataclass(frozen=True, slots=True)
class StickerGrant:
    """Result of adding one sticker to a member's inventory."""

    sticker_id: int
    quantity: int

    @property
    def is_duplicate(self) -> bool:
        return self.quantity > 1


# ---------------------------------------------------------------------------
# Collections & stickers
# ---------------------------------------------------------------------------
def get_active_collection(session: Session, today: date) -> StickerCollection | None:
    """The collection cards are issued against on *today*."""
    return session.scalar(
        select(StickerCollection)
        .where(
            StickerCollection.is_active.is_(True),
            StickerCollection.start_date <= today,
            or_(StickerCollection.end_date.is_(None), StickerCollection.end_date >= today),
        )
        .order_by(StickerCollection.display_order, StickerCollection.id)
        .limit(1)
    )


def active_stickers(session: Session, collection_id: int) -> list[Sticker]:
    """Active stickers in draw order."""
    return list(session.scalars(
        select(Sticker)
        .where(Sticker.collection_id == collection_id, Sticker.is_active.is_(True))
        .order_by(Sticker.sticker_number, Sticker.id)
    ).all())


def rarity_percentages_for(collection: StickerCollection) -> dict[str, float] | None:
    """Tier percentages the collection draws with, or ``None`` for per-sticker rates."""
    if collection.rarity_percentages:
        return {k: float(v) for k, v in collection.rarity_percentages.items()}
    if collection.use_default_rarity:
        return dict(DEFAULT_RARITY_PERCENTAGES)
    return None


def draw_sticker(
    session: Session, collection_id: int, rng: random.Random | None = None
) -> Sticker:
    """Weighted draw of one active sticker from *collection_id*.

    Raises :class:`EmptyCollection` when nothing can be drawn.
    """
    collection = session.get(StickerCollection, collection_id)
    if collection is None:
        raise NotFound("collection not found")

    stickers = active_stickers(session, collection_id)
    weights = effective_weights(stickers, rarity_percentages_for(collection))
    sticker = draw_one(stickers, weights, rng)
    logger.debug(
        "Drew sticker %d (%s) from collection %d",
        sticker.id, sticker.rarity, collection_id,
    )
    return sticker


# ---------------------------------------------------------------------------
# Inventory
# ---------------------------------------------------------------------------
def _bump_quantity(session: Session, user_id: str, sticker_id: int) -> int:
    return session.execute(
        update(UserSticker)
        .where(UserSticker.user_id == user_id, UserSticker.sticker_id == sticker_id)
        .values(quantity=UserSticker.quantity + 1, last_obtained_at=func.now())
        .execution_options(synchronize_session=False)
    ).rowcount


def _current_quantity(session: Session, user_id: str, sticker_id: int) -> int:
    return int(session.scalar(
        select(UserSticker.quantity).where(
            UserSticker.user_id == user_id, UserSticker.sticker_id == sticker_id
        )
    ) or 0)


def add_sticker(
    session: Session,
    user_id: str,
    sticker: Sticker,
    obtained_from: str = "daily_scratch",
) -> StickerGrant:
    """Increment or create the inventory row.  Does not commit."""
    if not _bump_quantity(session, user_id, sticker.id):
        try:
            with session.begin_nested():
                session.add(UserSticker(
                    user_id=user_id,
                    sticker_id=sticker.id,
                    collection_id=sticker.collection_id,
                    quantity=1,
                    obtained_from=obtained_from,
                ))
                session.flush()
        except IntegrityError:
            # Concurrent first grant won the insert.
            _bump_quantity(session, user_id, sticker.id)

    return StickerGrant(
        sticker_id=sticker.id,
        quantity=_current_quantity(session, user_id, sticker.id),
    )


# ---------------------------------------------------------------------------
# Progress & album
# ---------------------------------------------------------------------------
def collection_progress(
    session: Session, user_id: str, collection_id: int
) -> CollectionProgress:
    """Distinct active stickers owned vs. active stickers in the collection."""
    total = session.scalar(
        select(func.count()).select_from(Sticker).where(
            Sticker.collection_id == collection_id, Sticker.is_active.is_(True)
        )
    ) or 0
    owned = session.scalar(
        select(func.count(func.distinct(UserSticker.sticker_id)))
        .join(Sticker, Sticker.id == UserSticker.sticker_id)
        .where(
            UserSticker.user_id == user_id,
            Sticker.collection_id == collection_id,
            Sticker.is_active.is_(True),
            UserSticker.quantity > 0,
        )
    ) or 0
    return CollectionProgress(collection_id=collection_id, owned=owned, total=total)


def get_progress(engine: Engine, user_id: str, collection_id: int) -> CollectionProgress:
    with Session(engine) as session:
        if session.get(StickerCollection, collection_id) is None:
            raise NotFound("collection not found")
        return collection_progress(session, user_id, collection_id)


def sticker_to_dict(sticker: Sticker) -> dict[str, Any]:
    return {
        "id": sticker.id,
        "collection_id": sticker.collection_id,
        "name": sticker.name,
        "rarity": sticker.rarity,
        "rarity_emoji": RARITY_EMOJI.get(sticker.rarity, ""),
        "sticker_number": sticker.sticker_number,
        "image_url": sticker.image_url,
    }


def get_album(engine: Engine, user_id: str) -> list[dict[str, Any]]:
    """Owned stickers grouped by collection, with progress."""
    with Session(engine) as session:
        rows = session.execute(
            select(UserSticker, Sticker)
            .join(Sticker, Sticker.id == UserSticker.sticker_id)
            .where(UserSticker.user_id == user_id, UserSticker.quantity > 0)
            .order_by(UserSticker.collection_id, Sticker.sticker_number, Sticker.id)
        ).all()

        album: dict[int, dict[str, Any]] = {}
        for owned, sticker in rows:
            entry = album.get(owned.collection_id)
            if entry is None:
                collection = session.get(StickerCollection, owned.collection_id)
                entry = album[owned.collection_id] = {
                    "collection_id": owned.collection_id,
                    "name": collection.name if collection else "",
                    "theme": collection.theme if collection else "",
                    "stickers": [],
                }
            entry["stickers"].append({**sticker_to_dict(sticker), "quantity": owned.quantity})

        for collection_id, entry in album.items():
            entry["progress"] = collection_progress(session, user_id, collection_id).to_dict()

        return list(album.values())


def ensure_not_empty(session: Session, collection_id: int) -> None:
    """Raise :class:`EmptyCollection` if nothing in the collection can drop."""
    if not active_stickers(session, collection_id):
        raise EmptyCollection()
