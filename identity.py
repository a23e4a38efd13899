"""
Identity records and the identity provider.

An identity is either ``Anonymous`` or ``Authenticated``; consumers check
which one they hold with ``isinstance`` instead of poking at optional
attributes. The provider keeps accounts in the ``user`` collection, issues
JWT bearer tokens and pushes every identity change to its subscribers.
"""
import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Union

import jwt

from database import DocumentStore
from errors import AuthenticationError, ValidationError
from schemas import User, parse_fields, to_document

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
DEFAULT_DISPLAY_NAME = "Anonymous User"


@dataclass(frozen=True)
class Anonymous:
    pass


@dataclass(frozen=True)
class Authenticated:
    uid: str
    email: str
    display_name: str = ""


Identity = Union[Anonymous, Authenticated]
ANONYMOUS = Anonymous()

Listener = Callable[[Identity], None]


@dataclass(frozen=True)
class SignedIn:
    token: str
    identity: Authenticated


def hash_password(password: str) -> str:
    return hashlib.sha256(password.encode()).hexdigest()


class IdentityProvider:
    def __init__(self, store: DocumentStore, secret: str, algorithm: str = "HS256", ttl_days: int = 7):
        self.store = store
        self.secret = secret
        self.algorithm = algorithm
        self.ttl = timedelta(days=ttl_days)
        self._listeners: List[Listener] = []

    # ---- subscriptions

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` for identity changes; returns the unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, identity: Identity) -> None:
        for listener in list(self._listeners):
            listener(identity)

    # ---- tokens

    def create_token(self, identity: Authenticated) -> str:
        payload = {
            "id": identity.uid,
            "email": identity.email,
            "name": identity.display_name,
            "exp": datetime.now(timezone.utc) + self.ttl,
        }
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def decode_token(self, token: str) -> dict:
        try:
            return jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except jwt.ExpiredSignatureError:
            raise AuthenticationError("Token expired")
        except jwt.InvalidTokenError:
            raise AuthenticationError("Invalid token")

    async def resolve_token(self, token: str) -> Authenticated:
        payload = self.decode_token(token)
        user_id = payload.get("id")
        if not user_id:
            raise AuthenticationError("Invalid token payload")
        user = await self.store.get_document("user", user_id)
        if not user:
            raise AuthenticationError("User not found")
        return Authenticated(uid=user["id"], email=user["email"], display_name=user.get("display_name", ""))

    # ---- account flows

    async def sign_up(self, email: str, password: str, display_name: str = "") -> SignedIn:
        if len(password or "") < MIN_PASSWORD_LENGTH:
            raise AuthenticationError("Your password must be at least %d characters." % MIN_PASSWORD_LENGTH)
        try:
            user = parse_fields(User, {
                "display_name": (display_name or "").strip(),
                "email": (email or "").strip().lower(),
                "password_hash": hash_password(password),
            })
        except ValidationError as e:
            raise AuthenticationError("Invalid email address") from e
        existing = await self.store.get_documents("user", {"email": user.email}, limit=1)
        if existing:
            raise AuthenticationError("This email is already registered.")
        uid = await self.store.create_document("user", to_document(user))
        logger.info("registered user %s", uid)
        return self._signed_in(Authenticated(uid=uid, email=user.email, display_name=user.display_name))

    async def sign_in(self, email: str, password: str) -> SignedIn:
        found = await self.store.get_documents("user", {"email": (email or "").strip().lower()}, limit=1)
        if not found or found[0].get("password_hash") != hash_password(password or ""):
            raise AuthenticationError("Wrong password or email. Please check your credentials and try again.")
        user = found[0]
        return self._signed_in(Authenticated(uid=user["id"], email=user["email"], display_name=user.get("display_name", "")))

    async def refresh(self, token: str) -> SignedIn:
        return self._signed_in(await self.resolve_token(token))

    def sign_out(self) -> None:
        self._notify(ANONYMOUS)

    def _signed_in(self, identity: Authenticated) -> SignedIn:
        signed = SignedIn(token=self.create_token(identity), identity=identity)
        self._notify(identity)
        return signed
