import json
import hmac
import base64
import hashlib
import logging
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel
from pymongo.database import Database

from database import USERS

logger = logging.getLogger(__name__)

# Simple JWT (HS256), issued by the identity provider with a shared secret

def _b64url_encode(b: bytes) -> str:
    return base64.urlsafe_b64encode(b).rstrip(b"=").decode()

def _b64url_decode(s: str) -> bytes:
    pad = '=' * (-len(s) % 4)
    return base64.urlsafe_b64decode(s + pad)

def jwt_decode(token: str, secret: str) -> dict:
    try:
        header_b64, payload_b64, sig_b64 = token.split('.')
        signing_input = f"{header_b64}.{payload_b64}".encode()
        expected_sig = hmac.new(secret.encode(), signing_input, hashlib.sha256).digest()
        if not hmac.compare_digest(_b64url_encode(expected_sig), sig_b64):
            raise ValueError("Invalid signature")
        payload = json.loads(_b64url_decode(payload_b64))
        # exp check
        if 'exp' in payload:
            exp = datetime.fromisoformat(payload['exp']) if isinstance(payload['exp'], str) else datetime.fromtimestamp(payload['exp'], tz=timezone.utc)
            if datetime.now(timezone.utc) > exp:
                raise ValueError("Token expired")
        return payload
    except Exception as e:
        raise ValueError(str(e))


class Identity(BaseModel):
    uid: str
    email: Optional[str] = None


class TokenVerifier:
    """Turns a bearer token into an Identity; None when it does not verify"""

    def __init__(self, secret: str):
        self.secret = secret

    def verify(self, token: Optional[str]) -> Optional[Identity]:
        if not token:
            return None
        try:
            payload = jwt_decode(token, self.secret)
        except ValueError as e:
            logger.warning("Invalid token: %s", e)
            return None
        uid = payload.get("sub") or payload.get("uid")
        if not uid:
            logger.warning("Token without subject")
            return None
        return Identity(uid=str(uid), email=payload.get("email"))


class RoleLookup:
    """Admin check: a `users` document with this uid and role "admin" """

    def __init__(self, db: Database):
        self.collection = db[USERS]

    def is_admin(self, identity: Optional[Identity]) -> bool:
        if identity is None:
            return False
        user = self.collection.find_one({"uid": identity.uid})
        return bool(user and user.get("role") == "admin")
