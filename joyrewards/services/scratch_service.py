"""
joyrewards.services.scratch_service — Scratch Card Lifecycle
=============================================================

A card is ``unscratched`` until it is scratched (terminal) or its
``expires_at`` passes (terminal, checked lazily at scratch time).

- One free daily card per member per local day, expiring at the next
  local midnight.
- Bonus cards are bought with coins; cost doubles with each purchase on the
  same day, capped by ``scratch.max_bonus_cards_per_day``.
- Streak milestones and the chore wheel hand out free bonus cards.

Scratching draws a sticker, flips the card with a conditional UPDATE (so a
concurrent second scratch loses) and grants the sticker, all in one
transaction.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from joyrewards.config import DEFAULT_TIMEZONE
from joyrewards.database.models import DailyScratchCard, TransactionType
from joyrewards.engine.calendar import as_utc, local_today, next_local_midnight, utcnow
from joyrewards.errors import (
    AlreadyScratched,
    CardExpired,
    EmptyCollection,
    LimitReached,
    NotFound,
)
from joyrewards.services.collection_service import (
    add_sticker,
    collection_progress,
    draw_sticker,
    ensure_not_empty,
    get_active_collection,
    sticker_to_dict,
)
from joyrewards.services.ledger_service import debit, get_balance, get_or_create_profile

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from joyrewards.engine.policy import RewardPolicy

logger = logging.getLogger(__name__)

DEFAULT_BONUS_CARD_COST = 50
DEFAULT_MAX_BONUS_CARDS = 1
_NUMBER_RETRIES = 3


@dataclass(slots=True)
class ScratchResult:
    card_id: int
    sticker: dict[str, Any]
    is_duplicate: bool
    quantity: int
    is_complete: bool

    def as_response(self) -> dict[str, Any]:
        return {
            "success": True,
            "sticker": self.sticker,
            "isDuplicate": self.is_duplicate,
            "quantity": self.quantity,
            "isComplete": self.is_complete,
        }


def card_to_dict(card: DailyScratchCard) -> dict[str, Any]:
    return {
        "id": card.id,
        "collection_id": card.collection_id,
        "date": card.card_date.isoformat(),
        "is_bonus_card": card.is_bonus_card,
        "purchase_number": card.purchase_number,
        "source": card.source,
        "expires_at": as_utc(card.expires_at).isoformat(),
        "is_scratched": card.is_scratched,
        "revealed_sticker_id": card.revealed_sticker_id,
    }


# ---------------------------------------------------------------------------
# Issuance
# ---------------------------------------------------------------------------
def _daily_card(session: Session, user_id: str, today: date) -> DailyScratchCard | None:
    return session.scalar(
        select(DailyScratchCard).where(
            DailyScratchCard.user_id == user_id,
            DailyScratchCard.card_date == today,
            DailyScratchCard.is_bonus_card.is_(False),
        )
    )


def issue_daily_card(
    session: Session, user_id: str, *, now: datetime, tz_name: str
) -> DailyScratchCard | None:
    """Today's free card, created if missing.  ``None`` with no active collection."""
    today = local_today(now, tz_name)
    card = _daily_card(session, user_id, today)
    if card is not None:
        return card

    collection = get_active_collection(session, today)
    if collection is None:
        logger.debug("No active collection on %s; no daily card for %s", today, user_id)
        return None

    card = DailyScratchCard(
        user_id=user_id,
        collection_id=collection.id,
        card_date=today,
        is_bonus_card=False,
        purchase_number=0,
        source="daily",
        expires_at=next_local_midnight(now, tz_name),
    )
    try:
        with session.begin_nested():
            session.add(card)
            session.flush()
    except IntegrityError:
        # Issued by a concurrent request.
        card = _daily_card(session, user_id, today)
    return card


def _next_bonus_number(session: Session, user_id: str, today: date) -> int:
    current = session.scalar(
        select(func.max(DailyScratchCard.purchase_number)).where(
            DailyScratchCard.user_id == user_id,
            DailyScratchCard.card_date == today,
            DailyScratchCard.is_bonus_card.is_(True),
        )
    )
    return int(current or 0) + 1


def _insert_bonus_card(
    session: Session,
    user_id: str,
    collection_id: int,
    *,
    today: date,
    expires_at: datetime,
    source: str,
) -> DailyScratchCard | None:
    card = DailyScratchCard(
        user_id=user_id,
        collection_id=collection_id,
        card_date=today,
        is_bonus_card=True,
        purchase_number=_next_bonus_number(session, user_id, today),
        source=source,
        expires_at=expires_at,
    )
    try:
        with session.begin_nested():
            session.add(card)
            session.flush()
    except IntegrityError:
        return None
    return card


def issue_free_cards(
    session: Session,
    user_id: str,
    count: int,
    *,
    now: datetime,
    tz_name: str,
    expires_at: datetime,
    source: str,
) -> list[DailyScratchCard]:
    """Hand out *count* free bonus cards from today's collection.  Does not commit."""
    if count <= 0:
        return []
    today = local_today(now, tz_name)
    collection = get_active_collection(session, today)
    if collection is None:
        logger.warning(
            "No active collection; %d free %s cards for %s not issued",
            count, source, user_id,
        )
        return []

    cards: list[DailyScratchCard] = []
    for _ in range(count):
        for _attempt in range(_NUMBER_RETRIES):
            card = _insert_bonus_card(
                session, user_id, collection.id,
                today=today, expires_at=expires_at, source=source,
            )
            if card is not None:
                cards.append(card)
                break
        else:
            raise RuntimeError(f"Could not number a {source} card for {user_id}")
    return cards


# ---------------------------------------------------------------------------
# Bonus purchase
# ---------------------------------------------------------------------------
def purchases_today(session: Session, user_id: str, today: date) -> int:
    return session.scalar(
        select(func.count()).select_from(DailyScratchCard).where(
            DailyScratchCard.user_id == user_id,
            DailyScratchCard.card_date == today,
            DailyScratchCard.source == "purchase",
        )
    ) or 0


def bonus_card_cost(policy: RewardPolicy, purchased: int) -> int:
    """Price of the next bonus card after *purchased* buys today."""
    base = policy.get_int("scratch.bonus_card_base_cost", DEFAULT_BONUS_CARD_COST)
    return base * 2 ** purchased


def bonus_status(
    session: Session, policy: RewardPolicy, user_id: str, today: date
) -> dict[str, Any]:
    purchased = purchases_today(session, user_id, today)
    limit = policy.get_int("scratch.max_bonus_cards_per_day", DEFAULT_MAX_BONUS_CARDS)
    return {
        "purchased_today": purchased,
        "max_per_day": limit,
        "can_purchase": purchased < limit,
        "next_cost": bonus_card_cost(policy, purchased),
    }


def purchase_bonus_card(
    engine: Engine,
    policy: RewardPolicy,
    user_id: str,
    *,
    tz_name: str = DEFAULT_TIMEZONE,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Buy one bonus card; the debit and the card insert commit together.

    Raises :class:`LimitReached`, :class:`EmptyCollection` or
    :class:`~joyrewards.errors.InsufficientFunds`.
    """
    now = now or utcnow()
    today = local_today(now, tz_name)

    with Session(engine) as session:
        get_or_create_profile(session, user_id)

        purchased = purchases_today(session, user_id, today)
        limit = policy.get_int("scratch.max_bonus_cards_per_day", DEFAULT_MAX_BONUS_CARDS)
        if purchased >= limit:
            raise LimitReached()

        collection = get_active_collection(session, today)
        if collection is None:
            raise EmptyCollection("no active collection")
        ensure_not_empty(session, collection.id)

        cost = bonus_card_cost(policy, purchased)

        card = _insert_bonus_card(
            session, user_id, collection.id,
            today=today,
            expires_at=next_local_midnight(now, tz_name),
            source="purchase",
        )
        if card is None:
            # Lost the race for this card number to a concurrent purchase.
            raise LimitReached()
        purchase_number = card.purchase_number

        debit(
            session, user_id, cost,
            f"Purchased bonus scratch card #{purchase_number}",
            transaction_type=TransactionType.PURCHASE,
            related_item_id=str(card.id),
            metadata={
                "purchase_type": "bonus_scratch_card",
                "date": today.isoformat(),
                "purchase_number": purchase_number,
            },
        )
        balance = get_balance(session, user_id)
        session.commit()

        logger.info(
            "User %s bought bonus card #%d for %d coins (card %d)",
            user_id, purchase_number, cost, card.id,
        )
        return {
            "card": card_to_dict(card),
            "cost": cost,
            "purchase_number": purchase_number,
            "balance": balance,
        }


# ---------------------------------------------------------------------------
# Scratch
# ---------------------------------------------------------------------------
def scratch_card(
    engine: Engine,
    card_id: int,
    user_id: str,
    *,
    now: datetime | None = None,
    rng: random.Random | None = None,
) -> ScratchResult:
    """Reveal a sticker from *card_id* and add it to the member's album.

    Raises :class:`NotFound` (unknown card or another member's),
    :class:`AlreadyScratched`, :class:`CardExpired` or
    :class:`EmptyCollection`; nothing is written in those cases.
    """
    now = now or utcnow()

    with Session(engine) as session:
        card = session.get(DailyScratchCard, card_id)
        if card is None or card.user_id != user_id:
            raise NotFound("card not found")
        if card.is_scratched:
            raise AlreadyScratched()
        if as_utc(now) >= as_utc(card.expires_at):
            raise CardExpired()

        sticker = draw_sticker(session, card.collection_id, rng)

        flipped = session.execute(
            update(DailyScratchCard)
            .where(
                DailyScratchCard.id == card_id,
                DailyScratchCard.is_scratched.is_(False),
            )
            .values(
                is_scratched=True,
                revealed_sticker_id=sticker.id,
                scratched_at=as_utc(now),
            )
            .execution_options(synchronize_session=False)
        ).rowcount
        if flipped != 1:
            raise AlreadyScratched()

        grant = add_sticker(session, user_id, sticker, obtained_from=card.source)
        progress = collection_progress(session, user_id, card.collection_id)
        result = ScratchResult(
            card_id=card_id,
            sticker=sticker_to_dict(sticker),
            is_duplicate=grant.is_duplicate,
            quantity=grant.quantity,
            is_complete=progress.is_complete,
        )
        session.commit()

    logger.info(
        "User %s scratched card %d: sticker %d (qty %d%s)",
        user_id, card_id, result.sticker["id"], result.quantity,
        ", collection complete" if result.is_complete else "",
    )
    return result


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------
def list_today_cards(
    engine: Engine,
    policy: RewardPolicy,
    user_id: str,
    *,
    tz_name: str = DEFAULT_TIMEZONE,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Issue today's daily card if needed and list every scratchable card."""
    now = now or utcnow()
    today = local_today(now, tz_name)

    with Session(engine) as session:
        get_or_create_profile(session, user_id)
        issue_daily_card(session, user_id, now=now, tz_name=tz_name)

        # expires_at is compared in Python; SQLite drops tzinfo on round-trip.
        cutoff = as_utc(now) - timedelta(days=31)
        candidates = session.scalars(
            select(DailyScratchCard)
            .where(
                DailyScratchCard.user_id == user_id,
                DailyScratchCard.is_scratched.is_(False),
                DailyScratchCard.card_date >= cutoff.date(),
            )
            .order_by(DailyScratchCard.card_date, DailyScratchCard.id)
        ).all()
        cards = [
            card_to_dict(c) for c in candidates if as_utc(c.expires_at) > as_utc(now)
        ]
        status = bonus_status(session, policy, user_id, today)
        session.commit()

    return {"date": today.isoformat(), "cards": cards, "bonus": status}
