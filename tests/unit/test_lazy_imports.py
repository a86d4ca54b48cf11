"""Tests for lazy import system in nostrpwa.__init__."""

from __future__ import annotations

import importlib
import sys

import pytest


class TestLazyImports:
    """Test PEP 562 lazy loading in nostrpwa.__init__."""

    def test_lazy_import_does_not_eagerly_load(self) -> None:
        """Importing nostrpwa does not load nostr_sdk-backed subpackages."""
        saved = {name: mod for name, mod in sys.modules.items() if name.startswith("nostrpwa")}
        for name in saved:
            del sys.modules[name]
        try:
            importlib.import_module("nostrpwa")

            assert "nostrpwa.core" not in sys.modules
            assert "nostrpwa.nips" not in sys.modules
            assert "nostrpwa.services" not in sys.modules
        finally:
            for name in [n for n in sys.modules if n.startswith("nostrpwa")]:
                del sys.modules[name]
            sys.modules.update(saved)

    def test_lazy_import_resolves_on_access(self) -> None:
        from nostrpwa import Publisher
        from nostrpwa.services.publisher import Publisher as DirectPublisher

        assert Publisher is DirectPublisher

    def test_lazy_import_caches_after_first_access(self) -> None:
        import nostrpwa

        _ = nostrpwa.SignerResolver

        assert "SignerResolver" in vars(nostrpwa)

    def test_lazy_import_invalid_attribute(self) -> None:
        import nostrpwa

        with pytest.raises(AttributeError, match="no_such_thing"):
            _ = getattr(nostrpwa, "no_such_thing")  # noqa: B009

    def test_all_exports_are_in_lazy_imports(self) -> None:
        """__all__ and _LAZY_IMPORTS stay in sync."""
        import nostrpwa

        assert set(nostrpwa.__all__) == set(nostrpwa._LAZY_IMPORTS)
