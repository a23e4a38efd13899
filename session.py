import logging
from typing import Callable, Optional

from identity import ANONYMOUS, Authenticated, Identity, IdentityProvider

logger = logging.getLogger(__name__)


class SessionCache:
    """Holds the current identity for one session.

    Starts out anonymous, is replaced on every provider callback and goes
    back to anonymous on logout or teardown. Readers always get the latest
    value; nothing polls the provider.
    """

    def __init__(self, initial: Identity = ANONYMOUS):
        self._identity: Identity = initial
        self._unsubscribe: Optional[Callable[[], None]] = None

    @property
    def current(self) -> Identity:
        return self._identity

    @property
    def is_authenticated(self) -> bool:
        return isinstance(self._identity, Authenticated)

    def set(self, identity: Identity) -> None:
        if identity != self._identity:
            logger.info("session identity changed: %s", _describe(identity))
        self._identity = identity

    def clear(self) -> None:
        self.set(ANONYMOUS)

    def attach(self, provider: IdentityProvider) -> None:
        self.detach()
        self._unsubscribe = provider.subscribe(self.set)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def close(self) -> None:
        self.detach()
        self.clear()


def _describe(identity: Identity) -> str:
    if isinstance(identity, Authenticated):
        return identity.email
    return "anonymous"
