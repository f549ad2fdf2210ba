"""
Tests for delivered credential parsing.

Parsing is best-effort: raw text is always preserved, recognized labels
populate username/password/token, other key/value pairs land in extra.
"""

import json

import pytest

from orderflow.fulfillment.credentials import (
    Credential,
    parse_credential,
    parse_credentials,
    serialize_credentials,
)


class TestParseCredential:
    """Tests for parse_credential."""

    def test_username_and_password(self):
        credential = parse_credential("username:alice password:secret")

        assert credential.raw == "username:alice password:secret"
        assert credential.username == "alice"
        assert credential.password == "secret"
        assert credential.token is None
        assert credential.extra is None

    def test_unrecognized_text_keeps_raw_only(self):
        credential = parse_credential("no recognizable format here")

        assert credential == Credential(raw="no recognizable format here")
        assert credential.to_dict() == {"raw": "no recognizable format here"}
        assert not credential.is_structured

    def test_empty_string(self):
        credential = parse_credential("")

        assert credential.raw == ""
        assert not credential.is_structured

    def test_none_becomes_empty_raw(self):
        assert parse_credential(None).raw == ""

    def test_non_string_is_coerced(self):
        assert parse_credential(12345).raw == "12345"

    @pytest.mark.parametrize("raw,expected", [
        ("user=bob", "bob"),
        ("Account: carol", "carol"),
        ("LOGIN - dave", "dave"),
        ("tài khoản: eve", "eve"),
    ])
    def test_username_label_variants(self, raw, expected):
        assert parse_credential(raw).username == expected

    @pytest.mark.parametrize("raw,expected", [
        ("pass=hunter2", "hunter2"),
        ("Password: p@ss:word", "p@ss:word"),
        ("mật khẩu: matkhau", "matkhau"),
    ])
    def test_password_label_variants(self, raw, expected):
        assert parse_credential(raw).password == expected

    def test_token_label(self):
        assert parse_credential("code: ABC-123").token == "ABC-123"

    def test_label_inside_word_is_ignored(self):
        """'superuser:x' must not be read as a username label."""
        assert parse_credential("superuser:x").username is None

    def test_extra_pairs_collected(self):
        credential = parse_credential("user=bob | pass=x | email=b@x.io | recovery=555")

        assert credential.username == "bob"
        assert credential.password == "x"
        assert credential.extra == {"email": "b@x.io", "recovery": "555"}

    def test_unspaced_pipe_stays_in_username_value(self):
        """Label values run to whitespace, so a bare '|' does not end the username."""
        credential = parse_credential("username:alice|password:secret")

        assert credential.username == "alice|password:secret"
        assert credential.password == "secret"
        assert credential.token is None
        assert credential.extra is None

    def test_raw_never_modified(self):
        raw = "  username: alice \n password: secret  "

        assert parse_credential(raw).raw == raw


class TestParseCredentials:
    """Tests for batch parsing and serialization."""

    def test_preserves_order(self):
        credentials = parse_credentials(["username:a", "username:b"])

        assert [c.username for c in credentials] == ["a", "b"]

    def test_serialize_omits_unset_fields(self):
        payload = serialize_credentials(parse_credentials([
            "username:alice password:secret",
            "plain text",
        ]))

        assert json.loads(payload) == [
            {"raw": "username:alice password:secret", "username": "alice", "password": "secret"},
            {"raw": "plain text"},
        ]

    def test_serialize_keeps_non_ascii(self):
        payload = serialize_credentials([parse_credential("tài khoản: eve")])

        assert "tài khoản" in payload

    def test_serialize_empty(self):
        assert serialize_credentials([]) == "[]"
