from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from basketledger.core.constants import OPERATOR_ROLE
from basketledger.core.security import decode_token
from basketledger.db.session import SessionLocal
from basketledger.services.environment import Environment, get_environment

bearer = HTTPBearer()

def db():
    s = SessionLocal()
    try:
        yield s
    finally:
        s.close()

def environment() -> Environment:
    return get_environment()

def current_user(creds: HTTPAuthorizationCredentials = Depends(bearer)) -> str:
    try:
        claims = decode_token(creds.credentials)
    except Exception:
        raise HTTPException(status_code=401, detail="invalid_token")
    sub = claims.get("sub")
    if not sub:
        raise HTTPException(status_code=401, detail="invalid_token")
    return sub

def require_operator(u: str = Depends(current_user), env: Environment = Depends(environment)) -> str:
    if not env.roles.has_role(OPERATOR_ROLE, u):
        raise HTTPException(status_code=403, detail="operator_only")
    return u
