from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from basketledger.api.deps import current_user, db, environment, require_operator
from basketledger.schemas.feed import CurvePointOut, FeedIn, FeedOut
from basketledger.services.environment import Environment
from basketledger.services.feed import curve_points, feed
from basketledger.services.ledgers import get_ledger

router = APIRouter(prefix="/ledgers/{ledger_id}/feed", tags=["feed"])


@router.post("", response_model=FeedOut)
def post_feed(
    ledger_id: int,
    body: FeedIn,
    s: Session = Depends(db),
    env: Environment = Depends(environment),
    u: str = Depends(require_operator),
):
    t = body.time if body.time is not None else env.now()
    out = feed(s, env, ledger_id, u, t, force=body.force)
    return FeedOut(
        posted=out.posted,
        feed_time=out.feed_time,
        basket_value=out.basket_value,
        previous_liabilities=out.previous_liabilities,
        delta=out.delta,
    )


@router.get("/curve", response_model=list[CurvePointOut])
def curve(ledger_id: int, s: Session = Depends(db), u=Depends(current_user)):
    get_ledger(s, ledger_id)
    return curve_points(s, ledger_id)
