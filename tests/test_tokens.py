"""Unit tests for auth/tokens.py -- random strings, validator digests, cookie helpers.

Covers:
- generate_random_string(): exact length, 62-character alphabet, rejects length <= 0
- digest_validator() / validator_matches(): SHA-256 hex, constant-time comparison
- split_token(): exactly two non-empty parts or TokenMalformed
- set_session_cookie(): http-only, SameSite=Strict, TTL vs one-year max-age
"""

import pytest
from fastapi.responses import JSONResponse

from auth.errors import TokenMalformed
from auth.tokens import (
    ALPHABET,
    clear_session_cookie,
    digest_validator,
    format_token,
    generate_random_string,
    set_session_cookie,
    split_token,
    validator_matches,
)


class TestGenerateRandomString:
    def test_length(self) -> None:
        assert len(generate_random_string(12)) == 12
        assert len(generate_random_string(48)) == 48

    def test_alphabet(self) -> None:
        assert len(ALPHABET) == 62
        assert set(generate_random_string(500)) <= set(ALPHABET)

    def test_values_differ(self) -> None:
        assert generate_random_string(48) != generate_random_string(48)

    @pytest.mark.parametrize("length", [0, -1])
    def test_non_positive_length_rejected(self, length: int) -> None:
        with pytest.raises(ValueError):
            generate_random_string(length)


class TestValidatorDigest:
    def test_digest_is_sha256_hex(self) -> None:
        digest = digest_validator("abc")
        assert digest == "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"

    def test_matches(self) -> None:
        assert validator_matches("abc", digest_validator("abc"))

    def test_mismatch(self) -> None:
        assert not validator_matches("abd", digest_validator("abc"))


class TestSplitToken:
    def test_round_trip(self) -> None:
        assert split_token(format_token("sel", "val")) == ("sel", "val")

    @pytest.mark.parametrize("value", ["abc", "a:b:c", ":val", "sel:", ":", ""])
    def test_malformed(self, value: str) -> None:
        with pytest.raises(TokenMalformed):
            split_token(value)


class TestSessionCookie:
    def _set_cookie_header(self, response: JSONResponse) -> str:
        return response.headers["set-cookie"].lower()

    def test_session_cookie_attributes(self, settings) -> None:
        resp = JSONResponse({})
        set_session_cookie(resp, "sel:val", settings)
        header = self._set_cookie_header(resp)
        assert header.startswith("token=sel:val")
        assert "httponly" in header
        assert "samesite=strict" in header
        assert "max-age=10800" in header
        assert "domain=" not in header

    def test_persistent_cookie_lasts_a_year(self, settings) -> None:
        resp = JSONResponse({})
        set_session_cookie(resp, "sel:val", settings, persistent=True)
        assert f"max-age={365 * 24 * 3600}" in self._set_cookie_header(resp)

    def test_secure_and_domain_from_settings(self, settings_factory) -> None:
        resp = JSONResponse({})
        set_session_cookie(resp, "sel:val", settings_factory(secure_cookies=True, cookie_domain="neon.example"))
        header = self._set_cookie_header(resp)
        assert "secure" in header
        assert "domain=neon.example" in header

    def test_clear_cookie(self, settings) -> None:
        resp = JSONResponse({})
        clear_session_cookie(resp, settings)
        header = self._set_cookie_header(resp)
        assert header.startswith("token=")
        assert "max-age=0" in header
