"""Tests for the identity endpoint client."""

import pytest

from spendy.models.session import LoginRequest, RegistrationRequest
from spendy.services.errors import AuthRejected, MalformedResponse, NetworkFailure
from spendy.services.identity import IdentityClient, decode_auth_response, decode_profile

from conftest import PROFILE, ScriptedTransport, respond, token_pair


class TestDecodeAuthResponse:
    """Tests for the tagged-union token decode."""

    def test_pair_shape_wins(self):
        """A body with both shapes decodes as a pair."""
        pair = decode_auth_response({"accessToken": "a", "refreshToken": "r", "token": "t"})

        assert (pair.access_token, pair.refresh_token) == ("a", "r")

    def test_legacy_shape(self):
        """{token} is used for both access and refresh."""
        pair = decode_auth_response({"token": "t"})

        assert (pair.access_token, pair.refresh_token) == ("t", "t")

    def test_legacy_shape_can_be_refused(self):
        """Rotation requires a real pair."""
        with pytest.raises(MalformedResponse):
            decode_auth_response({"token": "t"}, allow_legacy=False)

    @pytest.mark.parametrize("payload", [
        {},
        {"accessToken": "a"},
        {"accessToken": "", "refreshToken": ""},
        {"token": ""},
        ["a", "r"],
        None,
    ])
    def test_unusable_payloads(self, payload):
        """Anything without a usable token is malformed."""
        with pytest.raises(MalformedResponse):
            decode_auth_response(payload)


class TestIdentityClient:
    """Tests for the unauthenticated identity calls."""

    def test_login(self):
        """Login posts credentials and decodes the pair."""
        transport = ScriptedTransport().script("POST", "/login", respond(200, token_pair()))
        client = IdentityClient(transport)

        pair = client.login(LoginRequest(username="mrossi", password="pw"))

        assert pair.refresh_token == "refresh-1"
        assert transport.calls[0]["json"] == {"username": "mrossi", "password": "pw"}

    def test_register_payload(self):
        """Registration sends every account field."""
        transport = ScriptedTransport().script("POST", "/register", respond(200, token_pair()))
        client = IdentityClient(transport)

        client.register(RegistrationRequest(
            username="mrossi",
            password="pw",
            email="mario@example.com",
            name="Mario",
            surname="Rossi",
        ))

        assert set(transport.calls[0]["json"]) == {
            "username", "password", "email", "name", "surname"
        }

    @pytest.mark.parametrize("status", [400, 401, 403, 409])
    def test_rejections(self, status):
        """Refusals carry their status code."""
        transport = ScriptedTransport().script("POST", "/login", respond(status))
        client = IdentityClient(transport)

        with pytest.raises(AuthRejected) as exc_info:
            client.login(LoginRequest(username="mrossi", password="pw"))
        assert exc_info.value.status_code == status

    @pytest.mark.parametrize("status", [404, 500, 503])
    def test_other_statuses_are_network_failures(self, status):
        """Unexpected statuses are transport-level failures."""
        transport = ScriptedTransport().script("POST", "/login", respond(status))
        client = IdentityClient(transport)

        with pytest.raises(NetworkFailure):
            client.login(LoginRequest(username="mrossi", password="pw"))

    def test_refresh_sends_refresh_token(self):
        """The refresh token travels in the body, not as a bearer."""
        transport = ScriptedTransport().script(
            "POST", "/refresh", respond(200, token_pair("a2", "r2"))
        )
        client = IdentityClient(transport)

        pair = client.refresh("r1")

        assert pair.refresh_token == "r2"
        assert transport.calls[0]["json"] == {"refreshToken": "r1"}
        assert transport.calls[0]["bearer_token"] is None


class TestDecodeProfile:
    """Tests for profile decoding."""

    def test_numeric_id_becomes_string(self):
        """Backends send numeric ids; they are kept as strings."""
        profile = decode_profile(respond(200, PROFILE))

        assert profile.id == "7"
        assert profile.initials == "MR"
        assert profile.full_name == "Mario Rossi"

    def test_id_is_optional(self):
        """The id field may be missing."""
        payload = {k: v for k, v in PROFILE.items() if k != "id"}

        assert decode_profile(respond(200, payload)).id is None

    def test_missing_fields_are_malformed(self):
        """A profile without an email cannot be decoded."""
        with pytest.raises(MalformedResponse):
            decode_profile(respond(200, {"username": "mrossi"}))
