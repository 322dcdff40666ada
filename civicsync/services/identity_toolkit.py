# civicsync/services/identity_toolkit.py
"""
Firebase Authentication through the Identity Toolkit REST API.

Covers the four entry paths the app offers (password sign-in, sign-up,
anonymous, custom token). Sign-out has no REST counterpart: the tokens are
simply dropped.
"""
from __future__ import annotations

import logging
from typing import Any, Dict

import jwt  # PyJWT
import requests

from civicsync.core.errors import AuthError
from civicsync.models.profile import Identity

log = logging.getLogger("identity_toolkit")

# Identity Toolkit error codes -> text shown on the auth form
_FRIENDLY = {
    "EMAIL_EXISTS": "The email address is already in use by another account.",
    "EMAIL_NOT_FOUND": "There is no user record corresponding to this email.",
    "INVALID_PASSWORD": "The password is invalid.",
    "INVALID_LOGIN_CREDENTIALS": "Invalid email or password.",
    "INVALID_EMAIL": "The email address is badly formatted.",
    "USER_DISABLED": "This account has been disabled.",
    "OPERATION_NOT_ALLOWED": "This sign-in method is not enabled.",
    "TOO_MANY_ATTEMPTS_TRY_LATER": "Too many attempts. Please try again later.",
    "INVALID_CUSTOM_TOKEN": "The sign-in token is invalid.",
    "CREDENTIAL_MISMATCH": "The sign-in token belongs to a different project.",
}


def _friendly(code: str) -> str:
    # WEAK_PASSWORD arrives as "WEAK_PASSWORD : Password should be at least 6 characters"
    head, _, detail = code.partition(" : ")
    if head == "WEAK_PASSWORD":
        return detail or "The password is too weak."
    return _FRIENDLY.get(head, code)


class IdentityToolkitClient:
    def __init__(self, api_key: str | None, base_url: str, session: requests.Session, timeout: float = 20):
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._session = session
        self._timeout = timeout

    def _call(self, method: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        if not self._api_key:
            raise AuthError("Missing Firebase Web API key (set FIREBASE_API_KEY).")
        endpoint = f"{self._base_url}/accounts:{method}"
        try:
            resp = self._session.post(endpoint, params={"key": self._api_key}, json=payload, timeout=self._timeout)
        except requests.RequestException as exc:
            log.error("[identity_toolkit] %s network error: %s", method, exc)
            raise AuthError("Could not reach the authentication service.") from exc

        try:
            data = resp.json()
        except ValueError:
            data = {}

        if resp.status_code == 200:
            return data

        code = (data.get("error") or {}).get("message") or (resp.text or "")[:300]
        log.warning("[identity_toolkit] %s failed (%s): %s", method, resp.status_code, code)
        raise AuthError(_friendly(code))

    def _identity(self, data: Dict[str, Any], anonymous: bool = False) -> Identity:
        uid = data.get("localId")
        id_token = data.get("idToken")
        if not uid and id_token:
            # signInWithCustomToken does not echo localId; the ID token carries it
            try:
                claims = jwt.decode(id_token, options={"verify_signature": False})
            except jwt.PyJWTError as exc:
                log.warning("[identity_toolkit] unreadable id token: %s", exc)
                raise AuthError("Authentication service returned an unreadable token.") from exc
            uid = claims.get("user_id") or claims.get("sub")
            data = {**data, "email": data.get("email") or claims.get("email")}
        if not uid:
            raise AuthError("Authentication service returned no user id.")
        return Identity(
            uid=uid,
            email=data.get("email") or None,
            is_anonymous=anonymous,
            id_token=id_token,
            refresh_token=data.get("refreshToken"),
        )

    def sign_in_with_password(self, email: str, password: str) -> Identity:
        data = self._call("signInWithPassword", {
            "email": email,
            "password": password,
            "returnSecureToken": True,
        })
        return self._identity(data)

    def sign_up(self, email: str, password: str) -> Identity:
        data = self._call("signUp", {
            "email": email,
            "password": password,
            "returnSecureToken": True,
        })
        return self._identity(data)

    def sign_in_anonymously(self) -> Identity:
        data = self._call("signUp", {"returnSecureToken": True})
        return self._identity(data, anonymous=True)

    def sign_in_with_custom_token(self, token: str) -> Identity:
        data = self._call("signInWithCustomToken", {
            "token": token,
            "returnSecureToken": True,
        })
        return self._identity(data)

    def sign_out(self, identity: Identity) -> None:
        identity.id_token = None
        identity.refresh_token = None
        log.info("[identity_toolkit] signed out %s", identity.uid)
