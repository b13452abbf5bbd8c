from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from basketledger.api.deps import current_user, db, environment
from basketledger.core.constants import OPEN_TERM
from basketledger.core.errors import InvalidAmount
from basketledger.schemas.stake import CertificateOut, PositionOut, StakeIn, StakeOut, UnstakeIn, UnstakeOut
from basketledger.services import fixed_term, open_term
from basketledger.services.environment import Environment
from basketledger.services.ledgers import get_ledger

router = APIRouter(prefix="/ledgers/{ledger_id}", tags=["stakes"])


@router.post("/stake", response_model=StakeOut)
def stake(
    ledger_id: int,
    body: StakeIn,
    s: Session = Depends(db),
    env: Environment = Depends(environment),
    u: str = Depends(current_user),
):
    beneficiary = body.beneficiary or u
    ledger = get_ledger(s, ledger_id)
    if ledger.kind == OPEN_TERM:
        out = open_term.stake_from(s, env, ledger_id, u, body.amount, beneficiary)
        return StakeOut(shares=out.shares, net=out.net, fee=out.fee)

    cert = fixed_term.stake_from(s, env, ledger_id, u, body.amount, beneficiary)
    return StakeOut(
        token_id=cert.token_id,
        principal=cert.principal,
        start_date=cert.start_date,
        maturity_date=cert.maturity_date,
        fee=body.amount - cert.principal,
    )


@router.post("/unstake", response_model=UnstakeOut)
def unstake(
    ledger_id: int,
    body: UnstakeIn,
    s: Session = Depends(db),
    env: Environment = Depends(environment),
    u: str = Depends(current_user),
):
    owner = body.owner or u
    ledger = get_ledger(s, ledger_id)
    if ledger.kind == OPEN_TERM:
        if body.amount is None:
            raise InvalidAmount(amount=None)
        out = open_term.unstake_from(s, env, ledger_id, u, body.amount, owner)
        return UnstakeOut(amount=out.amount, fee=out.fee, paid=out.paid, shares=out.shares)

    if body.token_id is None:
        raise InvalidAmount(token_id=None)
    red = fixed_term.unstake_from(s, env, ledger_id, u, body.token_id, owner)
    return UnstakeOut(
        amount=red.principal + red.interest,
        fee=red.fee,
        paid=red.paid,
        token_id=red.token_id,
        interest=red.interest,
    )


@router.get("/positions", response_model=list[PositionOut])
def positions(ledger_id: int, s: Session = Depends(db), u=Depends(current_user)):
    return [PositionOut(owner=p.owner, shares=p.shares, value=p.value) for p in open_term.list_positions(s, ledger_id)]


@router.get("/positions/{owner}", response_model=PositionOut)
def position(ledger_id: int, owner: str, s: Session = Depends(db), u=Depends(current_user)):
    p = open_term.position_of(s, ledger_id, owner)
    return PositionOut(owner=p.owner, shares=p.shares, value=p.value)


@router.get("/certificates", response_model=list[CertificateOut])
def certificates(
    ledger_id: int,
    owner: str | None = Query(default=None),
    s: Session = Depends(db),
    env: Environment = Depends(environment),
    u=Depends(current_user),
):
    return [CertificateOut(**c.__dict__) for c in fixed_term.list_certificates(s, env, ledger_id, owner)]


@router.get("/certificates/{token_id}", response_model=CertificateOut)
def certificate(
    ledger_id: int,
    token_id: int,
    s: Session = Depends(db),
    env: Environment = Depends(environment),
    u=Depends(current_user),
):
    return CertificateOut(**fixed_term.certificate_value(s, env, ledger_id, token_id).__dict__)
