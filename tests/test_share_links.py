"""
Share token issuance and attribution record creation.
"""
from datetime import timedelta
from urllib.parse import parse_qs, urlparse

import jwt
import pytest

from services.deferred_link_store import DuplicateIdentifier
from services.errors import ContentMismatch, ContentNotFound, StoreUnavailable, TokenInvalid
from services.share_links import SHARE_TOKEN_TYPE, build_share_links, store_redirect_url
from utils.identifiers import is_reference, is_short_code
from utils.tokens import hash_token

DEVICE = {
    "user_agent": "Mozilla/5.0 (Linux; Android 14)",
    "ip": "::ffff:198.51.100.7",
    "install_source": "play_store",
}


class TestIssueShareToken:

    def test_payload_carries_share_details(self, share_service, codec, clock):
        issued = share_service.issue_share_token("U1", "C1", "IMG9")

        payload = codec.verify(issued["token"])
        assert payload == {
            "token_type": SHARE_TOKEN_TYPE,
            "subject_id": "U1",
            "content_id": "C1",
            "title": "Anime Portraits",
            "auxiliary_id": "IMG9",
            "issued_at": int(clock().timestamp() * 1000),
        }
        assert issued["title"] == "Anime Portraits"

    def test_issued_at_matches_token_iat(self, share_service):
        token = share_service.issue_share_token("U1", "C1")["token"]

        claims = jwt.decode(token, options={"verify_signature": False})
        assert claims["issued_at"] == claims["iat"] * 1000

    def test_blank_title_uses_default(self, share_service):
        assert share_service.issue_share_token("U1", "BLANK")["title"] == "AI Feature"

    def test_unknown_content(self, share_service):
        with pytest.raises(ContentNotFound):
            share_service.issue_share_token("U1", "MISSING")

    def test_nothing_is_stored(self, share_service, store):
        share_service.issue_share_token("U1", "C1")
        assert store.rows == {}

    def test_links(self, share_service):
        issued = share_service.issue_share_token("U1", "C1")
        links = issued["links"]
        token = issued["token"]

        assert links["web"] == f"http://localhost:8080/share/C1?token={token}"
        assert links["custom_scheme"] == f"exampleapp://share/C1?token={token}"
        assert links["android_intent"].startswith(f"intent://share/C1?token={token}#Intent;scheme=exampleapp;")
        assert "package=com.example.editor;" in links["android_intent"]
        assert links["android_intent"].endswith(";end")
        assert links["store"] == "https://play.google.com/store/apps/details?id=com.example.editor"


class TestVerifyShareToken:

    def test_content_mismatch(self, share_service, share_token):
        with pytest.raises(ContentMismatch):
            share_service.verify_share_token(share_token, "C2")

    def test_session_token_is_not_a_share_token(self, share_service, codec):
        token = codec.sign({"token_type": "deferred_session", "content_id": "C1"}, timedelta(hours=1))
        with pytest.raises(TokenInvalid):
            share_service.verify_share_token(token, "C1")

    def test_expired(self, share_service, codec):
        token = codec.sign({"token_type": SHARE_TOKEN_TYPE, "content_id": "C1"}, timedelta(seconds=-1))
        with pytest.raises(TokenInvalid):
            share_service.verify_share_token(token, "C1")


class TestCreateAttributionRecord:

    def test_stores_complete_record(self, share_service, share_token, store, clock):
        created = share_service.create_attribution_record(share_token, "C1", DEVICE)

        assert is_reference(created["reference"])
        assert created["reference"] == created["reference"].lower()
        assert is_short_code(created["short_code"])
        assert created["expires_at"] == clock() + timedelta(minutes=30)

        (link,) = store.rows.values()
        assert link.install_ref == created["reference"]
        assert link.short_code == created["short_code"]
        assert link.content_id == "C1"
        assert link.subject_id == "U1"
        assert link.auxiliary_id == "IMG9"
        assert link.title == "Anime Portraits"
        assert link.token_hash == hash_token(share_token)
        assert link.device_ip == "198.51.100.7"
        assert link.device_user_agent == DEVICE["user_agent"]
        assert link.install_source == "play_store"
        assert link.created_at == clock()
        assert link.consumed is False
        assert link.consumed_at is None

    def test_store_redirect_url_carries_identifiers(self, share_service, share_token):
        created = share_service.create_attribution_record(share_token, "C1", DEVICE)

        query = parse_qs(urlparse(created["store_redirect_url"]).query)
        assert query["id"] == ["com.example.editor"]
        referrer = parse_qs(query["referrer"][0])
        assert referrer == {"install_ref": [created["reference"]], "code": [created["short_code"]]}

    def test_each_record_gets_fresh_identifiers(self, share_service, share_token):
        first = share_service.create_attribution_record(share_token, "C1", DEVICE)
        second = share_service.create_attribution_record(share_token, "C1", DEVICE)
        assert first["reference"] != second["reference"]
        assert first["short_code"] != second["short_code"]

    def test_loopback_device_ip_not_stored(self, share_service, share_token, store):
        share_service.create_attribution_record(share_token, "C1", {"ip": "127.0.0.1"})
        (link,) = store.rows.values()
        assert link.device_ip is None

    @pytest.mark.parametrize("install_source", [None, "", "   ", 5, ["x"]])
    def test_missing_install_source_defaults_to_play_store(self, share_service, share_token, store, install_source):
        share_service.create_attribution_record(share_token, "C1", {"install_source": install_source})
        (link,) = store.rows.values()
        assert link.install_source == "play_store"

    def test_install_source_is_trimmed(self, share_service, share_token, store):
        share_service.create_attribution_record(share_token, "C1", {"install_source": "  galaxy_store "})
        (link,) = store.rows.values()
        assert link.install_source == "galaxy_store"

    def test_mismatched_content_stores_nothing(self, share_service, share_token, store):
        with pytest.raises(ContentMismatch):
            share_service.create_attribution_record(share_token, "C2", DEVICE)
        assert store.rows == {}

    def test_deleted_content_is_a_mismatch(self, share_service, share_token, content_lookup, store):
        del content_lookup.titles["C1"]
        with pytest.raises(ContentMismatch):
            share_service.create_attribution_record(share_token, "C1", DEVICE)
        assert store.rows == {}

    def test_invalid_token_stores_nothing(self, share_service, store):
        with pytest.raises(TokenInvalid):
            share_service.create_attribution_record("garbage", "C1", DEVICE)
        assert store.rows == {}

    def test_retries_after_insert_collision(self, share_service, share_token, store, monkeypatch):
        real_insert = store.insert
        calls = []

        def flaky_insert(**kwargs):
            calls.append(kwargs["install_ref"])
            if len(calls) == 1:
                raise DuplicateIdentifier("raced")
            return real_insert(**kwargs)

        monkeypatch.setattr(store, "insert", flaky_insert)
        created = share_service.create_attribution_record(share_token, "C1", DEVICE)

        assert len(calls) == 2
        assert calls[0] != calls[1]
        assert created["reference"] == calls[1]
        assert len(store.rows) == 1

    def test_gives_up_when_every_insert_collides(self, share_service, share_token, store, monkeypatch):
        def always_collides(**kwargs):
            raise DuplicateIdentifier("raced")

        monkeypatch.setattr(store, "insert", always_collides)
        with pytest.raises(StoreUnavailable):
            share_service.create_attribution_record(share_token, "C1", DEVICE)
        assert store.rows == {}


def test_build_share_links_escapes_token():
    links = build_share_links("a+b/c", "C1")
    assert links["web"].endswith("/share/C1?token=a%2Bb%2Fc")


def test_store_redirect_url_shape():
    url = store_redirect_url("3f2b8c1e-9a4d-4e6f-8b7a-1c2d3e4f5a6b", "AB3DE9FG")
    assert url.startswith("https://play.google.com/store/apps/details?id=com.example.editor&referrer=")
    assert "install_ref%3D3f2b8c1e-9a4d-4e6f-8b7a-1c2d3e4f5a6b%26code%3DAB3DE9FG" in url
