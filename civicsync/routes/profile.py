# civicsync/routes/profile.py
from fastapi import APIRouter, Depends

from civicsync.services.auth import get_current_session
from civicsync.services.registry import ClientSession

router = APIRouter(prefix="/profile", tags=["profile"])

@router.get("")
def my_profile(session: ClientSession = Depends(get_current_session)):
    return session.ledger.current.model_dump(by_alias=True)
