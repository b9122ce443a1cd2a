"""Tests for persona credential encryption."""

from __future__ import annotations

import re

import pytest

from chorus.crypto import CredentialCipher
from chorus.errors import CredentialError

KEY = "0123456789abcdef0123456789abcdef"


class TestCredentialCipher:
    def test_token_format(self) -> None:
        token = CredentialCipher(KEY).encrypt("sk-secret")
        assert re.fullmatch(r"[0-9a-f]{32}:[A-Za-z0-9+/]+=*", token)

    def test_decrypts_own_output(self) -> None:
        cipher = CredentialCipher(KEY)
        assert cipher.decrypt(cipher.encrypt("sk-secret")) == "sk-secret"

    def test_fresh_iv_per_call(self) -> None:
        cipher = CredentialCipher(KEY)
        assert cipher.encrypt("same") != cipher.encrypt("same")

    def test_unicode_and_empty(self) -> None:
        cipher = CredentialCipher(KEY)
        assert cipher.decrypt(cipher.encrypt("")) == ""
        assert cipher.decrypt(cipher.encrypt("clé-секрет")) == "clé-секрет"

    @pytest.mark.parametrize("key", ["short", "x" * 33, ""])
    def test_key_length_enforced(self, key: str) -> None:
        with pytest.raises(CredentialError, match="32"):
            CredentialCipher(key)

    @pytest.mark.parametrize("token", ["no-separator", "a:b:c", "zz:!!!", "00ff:AAAA"])
    def test_malformed_tokens(self, token: str) -> None:
        with pytest.raises(CredentialError):
            CredentialCipher(KEY).decrypt(token)

    def test_wrong_key(self) -> None:
        token = CredentialCipher(KEY).encrypt("sk-secret-value-long-enough")
        other = CredentialCipher("f" * 32)

        try:
            result = other.decrypt(token)
        except CredentialError:
            return
        # a wrong key occasionally yields valid padding; never the plaintext
        assert result != "sk-secret-value-long-enough"
