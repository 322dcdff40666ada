# civicsync/routes/auth.py
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, EmailStr

from civicsync.core.errors import AuthError
from civicsync.models.profile import Identity
from civicsync.services.auth import _sign, bearer, _decode
from civicsync.services.registry import ClientSession, SessionRegistry, get_registry

router = APIRouter(prefix="/auth", tags=["auth"])

class AuthIn(BaseModel):
    email: EmailStr
    password: str

def _session_out(session: ClientSession, identity: Identity) -> dict:
    return {
        "token": _sign(identity.uid, session.sid, identity.email),
        "uid": identity.uid,
        "email": identity.email,
        "isAnonymous": identity.is_anonymous,
    }

def _enter(registry: SessionRegistry, entry) -> dict:
    session = registry.create()
    try:
        identity = entry(session.manager)
    except AuthError:
        session.manager.close()
        raise
    registry.register(session)
    return _session_out(session, identity)

@router.post("/login")
def login(data: AuthIn, registry: SessionRegistry = Depends(get_registry)):
    return _enter(registry, lambda m: m.login(data.email, data.password))

@router.post("/signup")
def signup(data: AuthIn, registry: SessionRegistry = Depends(get_registry)):
    return _enter(registry, lambda m: m.signup(data.email, data.password))

@router.post("/guest")
def guest(registry: SessionRegistry = Depends(get_registry)):
    return _enter(registry, lambda m: m.guest())

@router.post("/logout")
def logout(cred=Depends(bearer), registry: SessionRegistry = Depends(get_registry)):
    # Always succeeds: a stale or missing token just means nothing to tear down
    if cred:
        try:
            payload = _decode(cred.credentials)
        except HTTPException:
            payload = None
        if payload:
            registry.discard(payload["sid"])
    return {"ok": True}
