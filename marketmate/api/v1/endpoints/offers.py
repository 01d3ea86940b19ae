from typing import Literal

from fastapi import APIRouter, Depends, Query, Request

from marketmate.api.v1.deps import get_offer_engine
from marketmate.core.errors import ValidationError
from marketmate.models.enums import OfferStatus, OfferType
from marketmate.models.offer import Offer
from marketmate.schemas.offer import OfferCreate, OfferOut, OfferStatusUpdate
from marketmate.services.auth import Actor, get_actor, require_writable
from marketmate.services.idempotency import optional_idempotency_key, run_idempotent
from marketmate.services.offers import OfferEngine
from marketmate.services.retry import run_atomic

router = APIRouter()


async def _create(engine: OfferEngine, actor: Actor, payload: OfferCreate) -> Offer:
    if payload.counter_offer_id:
        if payload.type != OfferType.OFFER:
            raise ValidationError("Only plain offers can counter an offer")
        return await engine.counter(payload.counter_offer_id, actor, payload.amount, payload.message)

    if not payload.listing_id:
        raise ValidationError("listing_id is required", details=[{"field": "listing_id"}])
    if payload.type == OfferType.BUY_NOW:
        return await engine.buy_now(payload.listing_id, actor)
    return await engine.make_offer(payload.listing_id, actor, payload.amount, payload.message)


@router.post("/offers", response_model=OfferOut, status_code=201)
async def create_offer(
    payload: OfferCreate,
    request: Request,
    actor: Actor = Depends(require_writable),
    idempotency_key: str | None = Depends(optional_idempotency_key),
    engine: OfferEngine = Depends(get_offer_engine),
) -> OfferOut:
    """
    New offer, buy-now purchase, or counter to a pending offer (when
    ``counter_offer_id`` is set).
    """
    async def work() -> dict:
        offer = await _create(engine, actor, payload)
        return OfferOut.model_validate(offer).model_dump(mode="json")

    resp = await run_atomic(
        engine.db,
        lambda: run_idempotent(
            engine.db,
            actor,
            idempotency_key,
            path=request.url.path,
            body=payload.model_dump(mode="json"),
            work=work,
        ),
    )
    return OfferOut(**resp)


@router.put("/offers/{offer_id}", response_model=OfferOut)
async def respond_to_offer(
    offer_id: str,
    payload: OfferStatusUpdate,
    actor: Actor = Depends(require_writable),
    engine: OfferEngine = Depends(get_offer_engine),
) -> OfferOut:
    if payload.status == OfferStatus.ACCEPTED:
        offer = await run_atomic(engine.db, lambda: engine.accept(offer_id, actor))
    else:
        offer = await run_atomic(engine.db, lambda: engine.decline(offer_id, actor))
    return OfferOut.model_validate(offer)


@router.get("/offers", response_model=list[OfferOut])
async def list_offers(
    direction: Literal["incoming", "outgoing"] = "incoming",
    status: OfferStatus | None = None,
    listing_id: str | None = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    actor: Actor = Depends(get_actor),
    engine: OfferEngine = Depends(get_offer_engine),
) -> list[OfferOut]:
    rows = await engine.list_offers(
        actor, direction=direction, status=status, listing_id=listing_id, limit=limit, offset=offset
    )
    return [OfferOut.model_validate(r) for r in rows]


@router.get("/offers/{offer_id}", response_model=OfferOut)
async def get_offer(
    offer_id: str,
    actor: Actor = Depends(get_actor),
    engine: OfferEngine = Depends(get_offer_engine),
) -> OfferOut:
    return OfferOut.model_validate(await engine.get_for_party(offer_id, actor))


@router.get("/offers/{offer_id}/chain", response_model=list[OfferOut])
async def get_offer_chain(
    offer_id: str,
    actor: Actor = Depends(get_actor),
    engine: OfferEngine = Depends(get_offer_engine),
) -> list[OfferOut]:
    return [OfferOut.model_validate(o) for o in await engine.chain(offer_id, actor)]
