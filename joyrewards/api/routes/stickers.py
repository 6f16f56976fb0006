"""
joyrewards.api.routes.stickers — Scratch cards & sticker album (JWT-protected)
===============================================================================

Domain failures (expired, already scratched, not enough coins) are raised
as :class:`~joyrewards.errors.RewardError` and answered with
``400 {"error": reason}`` by the app-level handler.
"""

from __future__ import annotations

from fastapi import APIRouter
from pydantic import BaseModel

from joyrewards.api.deps import ConfigDep, EngineDep, PolicyDep, UserDep, user_id_of
from joyrewards.services import collection_service, scratch_service

router = APIRouter(prefix="/stickers", tags=["stickers"])


@router.get("/today")
def today_cards(user: UserDep, engine: EngineDep, policy: PolicyDep, cfg: ConfigDep):
    """Issue today's free card if needed and list every scratchable card."""
    return scratch_service.list_today_cards(
        engine, policy, user_id_of(user), tz_name=cfg.timezone
    )


class ScratchRequest(BaseModel):
    card_id: int


@router.post("/scratch")
def scratch_by_body(body: ScratchRequest, user: UserDep, engine: EngineDep):
    """Reveal a card named in the request body."""
    result = scratch_service.scratch_card(engine, body.card_id, user_id_of(user))
    return result.as_response()


@router.post("/cards/{card_id}/scratch")
def scratch(card_id: int, user: UserDep, engine: EngineDep):
    result = scratch_service.scratch_card(engine, card_id, user_id_of(user))
    return result.as_response()


@router.post("/bonus-cards")
def buy_bonus_card(user: UserDep, engine: EngineDep, policy: PolicyDep, cfg: ConfigDep):
    purchase = scratch_service.purchase_bonus_card(
        engine, policy, user_id_of(user), tz_name=cfg.timezone
    )
    return {"success": True, **purchase}


@router.get("/collections/{collection_id}/progress")
def collection_progress(collection_id: int, user: UserDep, engine: EngineDep):
    return collection_service.get_progress(engine, user_id_of(user), collection_id).to_dict()


@router.get("/album")
def album(user: UserDep, engine: EngineDep):
    return {"collections": collection_service.get_album(engine, user_id_of(user))}
