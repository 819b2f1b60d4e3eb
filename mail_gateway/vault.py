"""
Credential encryption at rest.

Format: ``<iv-hex>:<ciphertext-hex>``, AES-256-CBC with PKCS7 padding, keyed by
a scrypt-derived key from one shared secret. Any decrypt failure surfaces as
``AuthError``.
"""

from __future__ import annotations

import logging
import os

from cryptography.exceptions import InvalidKey
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from .errors import AuthError

log = logging.getLogger("mail_gateway.vault")

SALT = b"salt"
KEY_LENGTH = 32
IV_LENGTH = 16
# Node's crypto.scryptSync defaults, so existing ciphertexts stay readable.
SCRYPT_N = 16384
SCRYPT_R = 8
SCRYPT_P = 1


def derive_key(secret: str) -> bytes:
  if not secret:
    raise AuthError("Encryption key is not set")
  kdf = Scrypt(salt=SALT, length=KEY_LENGTH, n=SCRYPT_N, r=SCRYPT_R, p=SCRYPT_P)
  return kdf.derive(secret.encode("utf-8"))


def encrypt(plaintext: str, key: bytes) -> str:
  """Encrypt ``plaintext`` with a derived ``key``."""
  iv = os.urandom(IV_LENGTH)
  padder = padding.PKCS7(algorithms.AES.block_size).padder()
  padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()
  encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
  ciphertext = encryptor.update(padded) + encryptor.finalize()
  return f"{iv.hex()}:{ciphertext.hex()}"


def decrypt(token: str, key: bytes) -> str:
  """Decrypt a ``<iv-hex>:<ciphertext-hex>`` token; raises AuthError on any failure."""
  parts = token.split(":") if isinstance(token, str) else []
  if len(parts) != 2 or not parts[0] or not parts[1]:
    raise AuthError("Invalid encrypted credential format")

  try:
    iv = bytes.fromhex(parts[0])
    ciphertext = bytes.fromhex(parts[1])
    decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
    padded = decryptor.update(ciphertext) + decryptor.finalize()
    unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
    plaintext = unpadder.update(padded) + unpadder.finalize()
    return plaintext.decode("utf-8")
  except (ValueError, UnicodeDecodeError, InvalidKey) as e:
    raise AuthError("Credential decryption failed; check the encryption key") from e


class CredentialVault:
  """Holds the active key, derived once at startup."""

  def __init__(self, secret: str) -> None:
    self._key = derive_key(secret)

  def encrypt(self, plaintext: str) -> str:
    return encrypt(plaintext, self._key)

  def decrypt(self, token: str, *, account_name: str | None = None) -> str:
    try:
      return decrypt(token, self._key)
    except AuthError as e:
      log.error("Failed to decrypt credential for %s", account_name or "<unknown>")
      e.account_name = account_name
      raise
