import base64
import hashlib
import json
from typing import Sequence

from nacl.exceptions import BadSignatureError
from nacl.signing import SigningKey

from scratchcard.config import ISSUER_SEED

# Issuer's Ed25519 keypair (kept in memory unless a seed is configured)
issuer_sk = SigningKey(bytes.fromhex(ISSUER_SEED)) if ISSUER_SEED else SigningKey.generate()
issuer_vk = issuer_sk.verify_key


def canonical_grid(grid_elements: Sequence[int]) -> str:
    """Stable JSON text for a row-major grid: no whitespace, ints only."""
    return json.dumps([int(v) for v in grid_elements], separators=(",", ":"))


def content_digest(grid_elements: Sequence[int]) -> str:
    """
    MD5 over the canonical grid. Detects accidental or casual tampering between
    issuance and validation; it is not meant to resist collision attacks.
    """
    return hashlib.md5(canonical_grid(grid_elements).encode()).hexdigest()


def _seal_message(ticket_id: str, draw_id: str, digest: str, tier_id) -> bytes:
    return f"{ticket_id}|{draw_id}|{digest}|{tier_id or ''}".encode()


def sign_ticket(ticket_id: str, draw_id: str, digest: str, tier_id=None) -> str:
    """Sign the issued ticket record with the issuer key."""
    signed = issuer_sk.sign(_seal_message(ticket_id, draw_id, digest, tier_id))
    return base64.b64encode(signed.signature).decode()


def verify_seal(ticket_id: str, draw_id: str, digest: str, tier_id, seal: str) -> bool:
    """
    Verify a stored ticket record against its issuer seal. A record whose tier
    or digest was edited after issuance fails here.
    """
    try:
        signature = base64.b64decode(seal)
        issuer_vk.verify(_seal_message(ticket_id, draw_id, digest, tier_id), signature)
        return True
    except (BadSignatureError, ValueError):
        return False
