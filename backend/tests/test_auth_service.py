"""Tests for login/logout/refresh and the two credential verifiers."""
import httpx
import pytest

from app.core.errors import AuthError
from app.core.security import decode_access_token, get_password_hash
from app.models.user import User, UserRole
from app.services.auth_service import (
    AccountDisabledError,
    AuthService,
    ExternalIdentityVerifier,
    HashCredentialVerifier,
    get_verifier,
)


@pytest.fixture()
def doctor(db_session):
    user = User(
        username="doctor",
        hashed_password=get_password_hash("7891"),
        full_name="Duty Doctor",
        role=UserRole.DOCTOR,
    )
    db_session.add(user)
    db_session.commit()
    return user


class TestHashBackedSessions:
    def setup_method(self):
        self.verifier = HashCredentialVerifier()

    def test_login_issues_token_pair(self, db_session, doctor):
        session = AuthService(db_session, self.verifier).login("doctor", "7891")
        assert session.role == UserRole.DOCTOR
        assert session.full_name == "Duty Doctor"
        payload = decode_access_token(session.access_token)
        assert payload["sub"] == doctor.id
        assert payload["type"] == "access"
        assert doctor.refresh_token == session.refresh_token
        assert doctor.last_login is not None

    def test_wrong_password_rejected(self, db_session, doctor):
        with pytest.raises(AuthError):
            AuthService(db_session, self.verifier).login("doctor", "1234")

    def test_unknown_user_rejected(self, db_session):
        with pytest.raises(AuthError):
            AuthService(db_session, self.verifier).login("nobody", "7891")

    def test_disabled_account_rejected(self, db_session, doctor):
        doctor.is_active = False
        db_session.commit()
        with pytest.raises(AccountDisabledError):
            AuthService(db_session, self.verifier).login("doctor", "7891")

    def test_refresh_rotates_the_token(self, db_session, doctor):
        auth = AuthService(db_session, self.verifier)
        first = auth.login("doctor", "7891")
        second = auth.refresh(first.refresh_token)
        assert second.refresh_token != first.refresh_token
        with pytest.raises(AuthError):
            auth.refresh(first.refresh_token)

    def test_access_token_cannot_refresh(self, db_session, doctor):
        auth = AuthService(db_session, self.verifier)
        session = auth.login("doctor", "7891")
        with pytest.raises(AuthError):
            auth.refresh(session.access_token)

    def test_logout_revokes_refresh(self, db_session, doctor):
        auth = AuthService(db_session, self.verifier)
        session = auth.login("doctor", "7891")
        auth.logout(doctor.id)
        assert doctor.refresh_token is None
        with pytest.raises(AuthError):
            auth.refresh(session.refresh_token)


class TestExternalIdentityVerifier:
    def test_mock_mode_accepts_known_user(self, db_session, doctor):
        verifier = ExternalIdentityVerifier(mock_mode=True)
        assert verifier.verify(db_session, "doctor", "anything").id == doctor.id

    def test_mock_mode_rejects_empty_password(self, db_session, doctor):
        with pytest.raises(AuthError):
            ExternalIdentityVerifier(mock_mode=True).verify(db_session, "doctor", "")

    def test_mock_mode_rejects_unknown_user(self, db_session):
        with pytest.raises(AuthError):
            ExternalIdentityVerifier(mock_mode=True).verify(db_session, "ghost", "pw")

    def test_remote_confirmation_maps_to_local_user(self, db_session, doctor, monkeypatch):
        calls = []

        def fake_post(self, url, json=None, headers=None):
            calls.append((url, json, headers))
            return httpx.Response(200, json={"valid": True, "username": "doctor"}, request=httpx.Request("POST", url))

        monkeypatch.setattr(httpx.Client, "post", fake_post)
        verifier = ExternalIdentityVerifier(base_url="https://idp.example.com", api_key="k", mock_mode=False)
        assert verifier.verify(db_session, "doctor", "7891").id == doctor.id
        url, body, headers = calls[0]
        assert url == "https://idp.example.com/verify"
        assert body == {"username": "doctor", "password": "7891"}
        assert headers == {"Authorization": "Bearer k"}

    def test_remote_rejection(self, db_session, doctor, monkeypatch):
        def fake_post(self, url, json=None, headers=None):
            return httpx.Response(401, request=httpx.Request("POST", url))

        monkeypatch.setattr(httpx.Client, "post", fake_post)
        verifier = ExternalIdentityVerifier(base_url="https://idp.example.com", mock_mode=False)
        with pytest.raises(AuthError):
            verifier.verify(db_session, "doctor", "bad")

    def test_provider_outage_raises_auth_error(self, db_session, doctor, monkeypatch):
        def fake_post(self, url, json=None, headers=None):
            raise httpx.ConnectError("connection refused")

        monkeypatch.setattr(httpx.Client, "post", fake_post)
        verifier = ExternalIdentityVerifier(base_url="https://idp.example.com", mock_mode=False)
        with pytest.raises(AuthError, match="unavailable"):
            verifier.verify(db_session, "doctor", "7891")

    def test_login_through_external_backend(self, db_session, doctor):
        session = AuthService(db_session, ExternalIdentityVerifier(mock_mode=True)).login("doctor", "x")
        assert session.username == "doctor"

    def test_default_settings_reject_wrong_password(self, db_session, doctor):
        with pytest.raises(AuthError):
            AuthService(db_session, ExternalIdentityVerifier()).login("doctor", "wrong")

    def test_missing_provider_url_rejects_even_known_users(self, db_session, doctor):
        verifier = ExternalIdentityVerifier(base_url="", mock_mode=False)
        with pytest.raises(AuthError, match="not configured"):
            verifier.verify(db_session, "doctor", "7891")


def test_get_verifier_selects_backend():
    assert isinstance(get_verifier("hash"), HashCredentialVerifier)
    assert isinstance(get_verifier("external"), ExternalIdentityVerifier)
    with pytest.raises(ValueError):
        get_verifier("ldap")
