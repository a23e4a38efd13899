from datetime import datetime, timedelta, timezone

import jwt
import pytest

from authorization import AuthorizationGate
from errors import AuthenticationError, AuthorizationError
from identity import ANONYMOUS, Anonymous, Authenticated, IdentityProvider
from session import SessionCache

from .helpers import run

SECRET = "test-secret"


@pytest.fixture
def provider(store):
    return IdentityProvider(store, SECRET)


class TestIdentityProvider:
    def test_sign_up_then_sign_in(self, provider):
        signed_up = run(provider.sign_up("Gamer@Example.com", "hunter22", "Gamer One"))
        assert signed_up.identity.email == "gamer@example.com"
        assert signed_up.identity.display_name == "Gamer One"

        signed_in = run(provider.sign_in("gamer@example.com", "hunter22"))
        assert signed_in.identity.uid == signed_up.identity.uid
        assert run(provider.resolve_token(signed_in.token)) == signed_in.identity

    def test_wrong_password(self, provider):
        run(provider.sign_up("gamer@example.com", "hunter22"))
        with pytest.raises(AuthenticationError):
            run(provider.sign_in("gamer@example.com", "hunter23"))
        with pytest.raises(AuthenticationError):
            run(provider.sign_in("nobody@example.com", "hunter22"))

    def test_duplicate_email(self, provider):
        run(provider.sign_up("gamer@example.com", "hunter22"))
        with pytest.raises(AuthenticationError, match="already registered"):
            run(provider.sign_up("GAMER@example.com", "another1"))

    def test_weak_password(self, provider):
        with pytest.raises(AuthenticationError, match="at least 6"):
            run(provider.sign_up("gamer@example.com", "12345"))

    def test_invalid_email(self, provider):
        with pytest.raises(AuthenticationError):
            run(provider.sign_up("not-an-email", "hunter22"))

    def test_expired_token(self, provider):
        signed = run(provider.sign_up("gamer@example.com", "hunter22"))
        expired = jwt.encode(
            {"id": signed.identity.uid, "exp": datetime.now(timezone.utc) - timedelta(minutes=1)},
            SECRET, algorithm="HS256",
        )
        with pytest.raises(AuthenticationError, match="expired"):
            run(provider.resolve_token(expired))

    def test_forged_token(self, provider):
        signed = run(provider.sign_up("gamer@example.com", "hunter22"))
        forged = jwt.encode({"id": signed.identity.uid}, "wrong-secret", algorithm="HS256")
        with pytest.raises(AuthenticationError):
            run(provider.resolve_token(forged))

    def test_refresh_issues_new_session(self, provider):
        signed = run(provider.sign_up("gamer@example.com", "hunter22"))
        refreshed = run(provider.refresh(signed.token))
        assert refreshed.identity == signed.identity


class TestSessionCache:
    def test_starts_anonymous(self):
        session = SessionCache()
        assert isinstance(session.current, Anonymous)
        assert not session.is_authenticated

    def test_follows_provider_notifications(self, provider):
        session = SessionCache()
        session.attach(provider)

        signed = run(provider.sign_up("gamer@example.com", "hunter22"))
        assert session.current == signed.identity

        provider.sign_out()
        assert session.current == ANONYMOUS

        run(provider.sign_in("gamer@example.com", "hunter22"))
        assert session.is_authenticated

    def test_close_detaches_and_clears(self, provider):
        session = SessionCache()
        session.attach(provider)
        run(provider.sign_up("gamer@example.com", "hunter22"))

        session.close()
        assert session.current == ANONYMOUS

        run(provider.sign_in("gamer@example.com", "hunter22"))
        assert session.current == ANONYMOUS


class TestAuthorizationGate:
    def test_admin_email_is_case_insensitive(self):
        gate = AuthorizationGate("Admin@Shop.com")
        assert gate.is_authorized(Authenticated(uid="1", email="admin@shop.COM"))
        assert not gate.is_authorized(Authenticated(uid="2", email="someone@shop.com"))
        assert not gate.is_authorized(ANONYMOUS)

    def test_require(self):
        gate = AuthorizationGate("admin@shop.com")
        admin = Authenticated(uid="1", email="admin@shop.com")
        assert gate.require(admin) is admin
        with pytest.raises(AuthorizationError):
            gate.require(ANONYMOUS)

    def test_admin_must_be_configured(self):
        with pytest.raises(ValueError):
            AuthorizationGate("  ")
