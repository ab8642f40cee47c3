"""Tests for bearer token issuing and verification."""

import pytest

from pdfsign.exceptions import UnauthorizedError
from pdfsign.services.identity import TokenIdentityProvider


class TestTokenIdentityProvider:

    def setup_method(self):
        self.identity = TokenIdentityProvider("secret-a", token_ttl_seconds=3600)

    def test_round_trip(self):
        token = self.identity.issue_token("user-1")
        assert self.identity.authenticate(f"Bearer {token}") == "user-1"

    @pytest.mark.parametrize("header", ["", "Bearer", "Bearer   ", "Basic dXNlcjpwdw==", "token"])
    def test_missing_or_malformed_header(self, header):
        with pytest.raises(UnauthorizedError, match="Please login"):
            self.identity.authenticate(header)

    def test_tampered_token(self):
        token = self.identity.issue_token("user-1")
        with pytest.raises(UnauthorizedError, match="Invalid token"):
            self.identity.authenticate(f"Bearer {token[:-2]}xx")

    def test_token_from_another_key(self):
        token = TokenIdentityProvider("secret-b").issue_token("user-1")
        with pytest.raises(UnauthorizedError, match="Invalid token"):
            self.identity.authenticate(f"Bearer {token}")

    def test_expired_token(self):
        identity = TokenIdentityProvider("secret-a", token_ttl_seconds=-1)
        token = identity.issue_token("user-1")
        with pytest.raises(UnauthorizedError, match="expired"):
            identity.authenticate(f"Bearer {token}")
