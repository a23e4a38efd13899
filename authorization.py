from identity import Authenticated, Identity
from errors import AuthorizationError


class AuthorizationGate:
    """Single-admin policy: only the configured administrator may mutate.

    This runs client-side only. Production deployments must mirror the same
    check in the document store's access rules.
    """

    def __init__(self, admin_email: str):
        if not admin_email or not admin_email.strip():
            raise ValueError("admin_email must be configured")
        self.admin_email = admin_email.strip().lower()

    def is_authorized(self, identity: Identity) -> bool:
        if not isinstance(identity, Authenticated):
            return False
        return (identity.email or "").strip().lower() == self.admin_email

    def require(self, identity: Identity) -> Authenticated:
        if not self.is_authorized(identity):
            raise AuthorizationError("Admin only")
        return identity
