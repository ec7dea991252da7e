"""
Tests for Mercado Pago signature verification
"""

from sessionpay.webhook_security import (
    build_manifest,
    check_mercadopago_signature,
    compute_hmac_sha256,
    constant_time_compare,
    parse_signature_header,
    verify_mercadopago_signature,
)

SECRET = "mp-webhook-secret"


def sign(data_id, request_id, ts):
    return compute_hmac_sha256(SECRET, build_manifest(data_id, request_id, ts).encode("utf-8"))


class TestManifest:
    def test_full_manifest(self):
        assert build_manifest("123", "req-1", "1700000000") == "id:123;request-id:req-1;ts:1700000000;"

    def test_alphanumeric_id_is_lowercased(self):
        assert build_manifest("ABC", None, "1") == "id:abc;ts:1;"

    def test_parse_signature_header(self):
        assert parse_signature_header("ts=1700000000, v1=abcdef") == {"ts": "1700000000", "v1": "abcdef"}
        assert parse_signature_header(None) == {}


class TestVerify:
    def test_valid_signature(self):
        header = f"ts=1700000000,v1={sign('123', 'req-1', '1700000000')}"
        assert verify_mercadopago_signature(header, "req-1", "123", SECRET) is True

    def test_tampered_id(self):
        header = f"ts=1700000000,v1={sign('123', 'req-1', '1700000000')}"
        assert verify_mercadopago_signature(header, "req-1", "124", SECRET) is False

    def test_missing_parts(self):
        assert verify_mercadopago_signature("v1=abc", "req-1", "123", SECRET) is False
        assert verify_mercadopago_signature(None, "req-1", "123", SECRET) is False

    def test_check_without_secret(self):
        assert check_mercadopago_signature("ts=1,v1=x", "req", "1", None) is None


def test_constant_time_compare_rejects_empty():
    assert constant_time_compare("", "") is False
    assert constant_time_compare("a", "a") is True
