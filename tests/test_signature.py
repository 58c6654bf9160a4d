"""
Tests for EventSub signature verification
"""

from datetime import datetime, timedelta, timezone

from streamrelay.services.signature import SignatureVerifier, compute_signature

SECRET = "s3cret"
NOW = datetime(2026, 10, 16, 12, 0, 0, tzinfo=timezone.utc)
TS = "2026-10-16T11:59:30.123456789Z"
BODY = b'{"subscription":{"type":"stream.online"}}'


def make_verifier(now: datetime = NOW, secret: str = SECRET) -> SignatureVerifier:
    return SignatureVerifier(secret, max_age_seconds=600, clock=lambda: now)


class TestSignatureVerifier:
    def test_valid_signature_accepted(self):
        sig = compute_signature(SECRET, "msg-1", TS, BODY)
        assert make_verifier().verify("msg-1", TS, sig, BODY)

    def test_signature_format(self):
        sig = compute_signature(SECRET, "msg-1", TS, BODY)
        assert sig.startswith("sha256=")
        assert len(sig) == len("sha256=") + 64

    def test_different_body_rejected(self):
        sig = compute_signature(SECRET, "msg-1", TS, BODY)
        check = make_verifier().check("msg-1", TS, sig, b'{"tampered":true}')
        assert not check.valid
        assert check.reason == "signature mismatch"

    def test_different_message_id_rejected(self):
        sig = compute_signature(SECRET, "msg-1", TS, BODY)
        assert not make_verifier().verify("msg-2", TS, sig, BODY)

    def test_wrong_secret_rejected(self):
        sig = compute_signature("other", "msg-1", TS, BODY)
        assert not make_verifier().verify("msg-1", TS, sig, BODY)

    def test_stale_timestamp_rejected(self):
        old = (NOW - timedelta(minutes=10, seconds=1)).strftime("%Y-%m-%dT%H:%M:%SZ")
        sig = compute_signature(SECRET, "msg-1", old, BODY)
        check = make_verifier().check("msg-1", old, sig, BODY)
        assert not check.valid
        assert check.reason == "timestamp outside replay window"

    def test_timestamp_inside_window_accepted(self):
        recent = (NOW - timedelta(minutes=9, seconds=59)).strftime("%Y-%m-%dT%H:%M:%SZ")
        sig = compute_signature(SECRET, "msg-1", recent, BODY)
        assert make_verifier().verify("msg-1", recent, sig, BODY)

    def test_timestamp_ahead_of_clock_accepted(self):
        ahead = (NOW + timedelta(minutes=15)).strftime("%Y-%m-%dT%H:%M:%SZ")
        sig = compute_signature(SECRET, "msg-1", ahead, BODY)
        assert make_verifier().verify("msg-1", ahead, sig, BODY)

    def test_malformed_timestamp_rejected(self):
        sig = compute_signature(SECRET, "msg-1", "yesterday", BODY)
        check = make_verifier().check("msg-1", "yesterday", sig, BODY)
        assert check.reason == "malformed timestamp"

    def test_timestamp_without_offset_rejected(self):
        naive = "2026-10-16T11:59:30"
        sig = compute_signature(SECRET, "msg-1", naive, BODY)
        assert not make_verifier().verify("msg-1", naive, sig, BODY)

    def test_missing_headers_rejected(self):
        assert not make_verifier().verify("", TS, "sha256=00", BODY)
        assert not make_verifier().verify("msg-1", TS, "", BODY)

    def test_empty_secret_rejects_everything(self):
        sig = compute_signature("", "msg-1", TS, BODY)
        check = make_verifier(secret="").check("msg-1", TS, sig, BODY)
        assert not check.valid

    def test_non_ascii_signature_does_not_raise(self):
        assert not make_verifier().verify("msg-1", TS, "sha256=ü", BODY)
