"""Authenticated encryption for snapshot files.

Encrypted snapshots use AES-256-GCM with this framing::

    b"FCBK" | nonce (12 bytes) | tag (16 bytes) | ciphertext

The key is the first 32 bytes of the configured secret; secrets shorter
than 32 bytes do not enable encryption.  Decryption checks the magic
marker and the GCM tag before any plaintext is returned.
"""

import json
import os
from pathlib import Path
from typing import Any

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from flock_backup.errors import SnapshotDecryptError

MAGIC = b"FCBK"
NONCE_SIZE = 12
TAG_SIZE = 16
KEY_SIZE = 32
HEADER_SIZE = len(MAGIC) + NONCE_SIZE + TAG_SIZE


def _key_bytes(key: str | bytes) -> bytes:
    return key.encode("utf-8") if isinstance(key, str) else key


def is_usable_key(key: str | bytes | None) -> bool:
    """True when ``key`` is long enough to enable encryption."""
    return key is not None and len(_key_bytes(key)) >= KEY_SIZE


def derive_key(key: str | bytes) -> bytes:
    """Truncate the configured secret to a 32-byte AES-256 key."""
    raw = _key_bytes(key)
    if len(raw) < KEY_SIZE:
        raise ValueError(f"Encryption key must be at least {KEY_SIZE} bytes")
    return raw[:KEY_SIZE]


def encrypt_bytes(plaintext: bytes, key: str | bytes) -> bytes:
    """Encrypt ``plaintext`` with a fresh nonce and return the framed blob."""
    nonce = os.urandom(NONCE_SIZE)
    encryptor = Cipher(algorithms.AES(derive_key(key)), modes.GCM(nonce)).encryptor()
    ciphertext = encryptor.update(plaintext) + encryptor.finalize()
    return MAGIC + nonce + encryptor.tag + ciphertext


def encrypt_document(data: dict[str, Any], key: str | bytes) -> bytes:
    """Serialize a JSON document and encrypt it."""
    plaintext = json.dumps(data, indent=2, default=str).encode("utf-8")
    return encrypt_bytes(plaintext, key)


def decrypt_bytes(blob: bytes, key: str | bytes) -> bytes:
    """Verify and decrypt a framed blob.

    Raises:
        SnapshotDecryptError: If the marker is missing, the blob is
            truncated, or authentication fails (wrong key or tampering).
    """
    if len(blob) < HEADER_SIZE or not blob.startswith(MAGIC):
        raise SnapshotDecryptError("Not an encrypted snapshot (bad header)")
    nonce = blob[len(MAGIC):len(MAGIC) + NONCE_SIZE]
    tag = blob[len(MAGIC) + NONCE_SIZE:HEADER_SIZE]
    ciphertext = blob[HEADER_SIZE:]
    try:
        decryptor = Cipher(
            algorithms.AES(derive_key(key)), modes.GCM(nonce, tag)
        ).decryptor()
        return decryptor.update(ciphertext) + decryptor.finalize()
    except InvalidTag:
        raise SnapshotDecryptError("Snapshot authentication failed") from None
    except ValueError as e:
        raise SnapshotDecryptError(str(e)) from e


def decrypt_snapshot(path: str | Path, key: str | bytes) -> dict[str, Any]:
    """Read an encrypted snapshot file and return its JSON document."""
    plaintext = decrypt_bytes(Path(path).read_bytes(), key)
    try:
        return json.loads(plaintext.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise SnapshotDecryptError(f"Decrypted snapshot is not valid JSON: {e}") from e
