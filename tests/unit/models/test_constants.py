"""
Unit tests for models.constants module.
"""

from nostrpwa.models import PWA_ALT_TEXT, PWA_MIME_TYPE, Encryption, EventKind, SessionState


class TestEventKind:
    def test_values(self):
        assert EventKind.SET_METADATA == 0
        assert EventKind.FILE_METADATA == 1063
        assert EventKind.USER_MEDIA_SERVERS == 10063
        assert EventKind.NOSTR_CONNECT == 24133
        assert EventKind.BLOSSOM_AUTH == 24242


class TestEnums:
    def test_session_states(self):
        assert [s.value for s in SessionState] == [
            "init",
            "resolving_identity",
            "awaiting_remote_ready",
            "ready",
            "failed",
        ]

    def test_encryption_from_string(self):
        assert Encryption("nip04") is Encryption.NIP04


class TestPwaConstants:
    def test_mime_and_alt(self):
        assert PWA_MIME_TYPE == "application/pwa+zip"
        assert PWA_ALT_TEXT == "Packaged PWA"
