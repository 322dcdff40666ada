import datetime as dt, jwt
from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPBearer
from civicsync.core.config import settings
from civicsync.services.registry import ClientSession, SessionRegistry, get_registry

bearer = HTTPBearer(auto_error=False)

def _sign(uid: str, sid: str, email: str | None = None, ttl_h: int | None = None) -> str:
    payload = {"sub": uid, "sid": sid, "email": email,
               "exp": dt.datetime.now(dt.timezone.utc) + dt.timedelta(hours=ttl_h or settings.access_ttl_h)}
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_alg)

def _claims(token: str, verify_exp: bool = True) -> dict:
    return jwt.decode(
        token,
        settings.jwt_secret,
        algorithms=[settings.jwt_alg],
        leeway=30,              # clock skew cushion
        options={"require": ["exp", "sub", "sid"], "verify_exp": verify_exp},
    )

def _decode(token: str) -> dict:
    try:
        return _claims(token)
    except jwt.ExpiredSignatureError:
        raise HTTPException(401, "Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(401, "Invalid token")

async def get_current_session(
    request: Request,
    cred = Depends(bearer),
    registry: SessionRegistry = Depends(get_registry),
) -> ClientSession:
    if not cred:
        raise HTTPException(401, "Missing token")
    try:
        payload = _decode(cred.credentials)
    except HTTPException as exc:
        if exc.detail == "Token expired":
            # signature was valid; tear down the session the token pointed at
            registry.discard(_claims(cred.credentials, verify_exp=False)["sid"])
        raise
    session = registry.get(payload["sid"])
    identity = session.context.identity if session else None
    if identity is None or identity.uid != payload["sub"]:
        raise HTTPException(401, "Session expired. Please sign in again.")
    request.state.user_id = identity.uid
    return session
