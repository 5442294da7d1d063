"""Deterministic, reversible pseudonymization of subject identifiers.

The identifier ``system`` is kept; only ``value`` is transformed, with
AES-SIV (RFC 5297) under a key derived from a shared secret by HKDF-SHA256.

Design:
- Deterministic: the same value always yields the same pseudonym, in every
  process sharing the secret. Pseudonyms therefore work as join keys across
  cohort and datamart outputs without a lookup table.
- Trade-off: equal identifiers produce equal pseudonyms, so repetition of a
  subject is visible to anyone holding the outputs. Switching to randomized
  encryption would break the join keys above.
- Reversible: holders of the secret can recover the original value.

Wire format (hex encoded):
    [SIV tag (16 bytes)] [ciphertext of (format byte || UTF-8 value)]
"""

from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESSIV
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from cohorting.exceptions import PseudonymizationError
from cohorting.models.identifiers import Identifier
from cohorting.config.settings import get_settings

# Constants
KEY_SIZE = 64  # AES-256-SIV uses two 256-bit keys
FORMAT_V1 = b"\x01"
_HKDF_INFO = b"cohorting/pseudonym/v1"


def derive_key(secret: str) -> bytes:
    """Derive the AES-SIV key from the shared secret."""
    return HKDF(
        algorithm=hashes.SHA256(),
        length=KEY_SIZE,
        salt=None,
        info=_HKDF_INFO,
    ).derive(secret.encode("utf-8"))


class Pseudonymizer:
    """Stateless identifier pseudonymizer; safe to share between threads.

    Example:
        >>> p = Pseudonymizer("shared-secret")
        >>> pseudo = p.to_pseudonym(Identifier(system="urn:mrn", value="123"))
        >>> p.from_pseudonym(pseudo).value
        '123'
    """

    def __init__(self, secret: Optional[str] = None):
        secret = get_settings().pseudonym_secret if secret is None else secret
        if not secret:
            raise PseudonymizationError("No pseudonym secret configured (PSEUDONYM_SECRET)")
        self._cipher = AESSIV(derive_key(secret))

    def encrypt_value(self, value: str) -> str:
        return self._cipher.encrypt(FORMAT_V1 + value.encode("utf-8"), None).hex()

    def decrypt_value(self, pseudonym: str) -> str:
        try:
            blob = bytes.fromhex(pseudonym)
            plaintext = self._cipher.decrypt(blob, None)
        except (ValueError, InvalidTag) as e:
            raise PseudonymizationError(f"Invalid pseudonym: {str(e) or type(e).__name__}") from e
        if not plaintext.startswith(FORMAT_V1):
            raise PseudonymizationError("Unknown pseudonym format")
        return plaintext[len(FORMAT_V1):].decode("utf-8")

    def to_pseudonym(self, identifier: Identifier) -> Identifier:
        return Identifier(system=identifier.system, value=self.encrypt_value(identifier.value))

    def from_pseudonym(self, identifier: Identifier) -> Identifier:
        return Identifier(system=identifier.system, value=self.decrypt_value(identifier.value))
