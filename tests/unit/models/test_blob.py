"""
Unit tests for models.blob module.

Tests:
- BlobDescriptor validation
- from_dict() parsing of Blossom server responses
"""

import pytest

from nostrpwa.models import BlobDescriptor


SHA = "b" * 64


class TestBlobDescriptor:
    def test_valid(self):
        blob = BlobDescriptor(url="https://cdn.example.com/abc", sha256=SHA, size=10)
        assert blob.type is None
        assert blob.uploaded is None

    def test_sha_lowercased(self):
        assert BlobDescriptor(url="https://x", sha256="B" * 64, size=1).sha256 == SHA

    @pytest.mark.parametrize(
        ("url", "sha256", "size"),
        [("", SHA, 1), ("https://x", "nothex", 1), ("https://x", SHA, -1)],
    )
    def test_invalid(self, url, sha256, size):
        with pytest.raises(ValueError):
            BlobDescriptor(url=url, sha256=sha256, size=size)


class TestFromDict:
    def test_full_response(self):
        blob = BlobDescriptor.from_dict(
            {
                "url": "https://cdn.example.com/" + SHA,
                "sha256": SHA,
                "size": "2048",
                "type": "application/pwa+zip",
                "uploaded": 1_700_000_000,
            }
        )
        assert blob.size == 2048
        assert blob.type == "application/pwa+zip"
        assert blob.uploaded == 1_700_000_000

    def test_missing_field(self):
        with pytest.raises(ValueError, match="Malformed"):
            BlobDescriptor.from_dict({"url": "https://x", "size": 1})

    def test_not_an_object(self):
        with pytest.raises(ValueError):
            BlobDescriptor.from_dict(["https://x"])
