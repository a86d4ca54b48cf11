"""Helpers shared by the nips and services layers.

Attributes:
    normalize_private_key: Hex or ``nsec`` input to canonical hex, or ``None``.
    LocalSigner: In-memory [Signer][nostrpwa.utils.keys.Signer].
    read_bounded_json: Size-capped JSON body reader for aiohttp responses.
"""

from .http import ensure_scheme, read_bounded_json
from .keys import LocalSigner, Signer, normalize_private_key, sign_event, sign_template


__all__ = [
    "LocalSigner",
    "Signer",
    "ensure_scheme",
    "normalize_private_key",
    "read_bounded_json",
    "sign_event",
    "sign_template",
]
