# tests/test_credentials.py
"""Tests for registry credential tokens."""

import base64
import json

from hubmirror.credentials import RegistryCredentials, decode_auth_token, encode_auth_token


class TestEncodeAuthToken:
    """Tests for encode_auth_token."""

    def test_deterministic(self):
        assert encode_auth_token("u", "p") == encode_auth_token("u", "p")

    def test_decodes_to_username_and_password(self):
        token = encode_auth_token("u", "p")

        assert json.loads(base64.urlsafe_b64decode(token)) == {"Username": "u", "Password": "p"}

    def test_uses_url_safe_alphabet(self):
        token = encode_auth_token("user", "??>>??>>")

        assert "+" not in token
        assert "/" not in token
        assert decode_auth_token(token)["Password"] == "??>>??>>"

    def test_keeps_padding(self):
        token = encode_auth_token("a", "b")

        assert len(token) % 4 == 0

    def test_non_ascii_credentials(self):
        token = encode_auth_token("jürgen", "pässwörd")

        assert decode_auth_token(token) == {"Username": "jürgen", "Password": "pässwörd"}

    def test_different_pairs_differ(self):
        assert encode_auth_token("u", "p") != encode_auth_token("u", "q")


class TestRegistryCredentials:
    """Tests for RegistryCredentials."""

    def test_token_matches_encoder(self):
        creds = RegistryCredentials("src.io", "reader", "secret")

        assert creds.token == encode_auth_token("reader", "secret")

    def test_repr_hides_password(self):
        creds = RegistryCredentials("src.io", "reader", "hunter2")

        assert "hunter2" not in repr(creds)
        assert "reader" in repr(creds)
