from __future__ import annotations

"""
At-rest protection for alias passwords inside the state document.

Only the `password` field is encrypted; ids, locals and sessions are
stored as plain JSON.
"""

import base64
import hashlib
import os
import secrets
from typing import Any, Dict

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

BLOB_VERSION = 1
KEY_BYTES = 32  # AES-256


class CipherError(ValueError):
    pass


def _b64e(b: bytes) -> str:
    return base64.urlsafe_b64encode(b).decode("ascii")


def _b64d(s: str) -> bytes:
    return base64.urlsafe_b64decode(s.encode("ascii"))


def key_id_from_key_bytes(key: bytes) -> str:
    return hashlib.sha256(key).hexdigest()[:16]


def best_effort_restrict_permissions(path: str) -> None:
    try:
        if os.name != "nt":
            os.chmod(path, 0o600)
    except OSError:
        return


def load_or_create_key(path: str) -> bytes:
    if os.path.exists(path):
        with open(path, "rb") as f:
            key = f.read()
        if len(key) != KEY_BYTES:
            raise CipherError(f"State key at {path!r} must be {KEY_BYTES} bytes.")
        return key
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    key = secrets.token_bytes(KEY_BYTES)
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
    with os.fdopen(fd, "wb") as f:
        f.write(key)
    best_effort_restrict_permissions(path)
    return key


def is_encrypted_blob(value: Any) -> bool:
    return isinstance(value, dict) and value.get("v") == BLOB_VERSION and "nonce" in value and "ciphertext" in value


class PasswordCipher:
    def __init__(self, key: bytes):
        if len(key) != KEY_BYTES:
            raise CipherError(f"Key must be {KEY_BYTES} bytes.")
        self._aes = AESGCM(key)
        self.key_id = key_id_from_key_bytes(key)

    @classmethod
    def from_key_file(cls, path: str) -> "PasswordCipher":
        return cls(load_or_create_key(path))

    def encrypt(self, plaintext: str, *, aad: str) -> Dict[str, Any]:
        nonce = secrets.token_bytes(12)
        ct = self._aes.encrypt(nonce, plaintext.encode("utf-8"), aad.encode("utf-8"))
        return {"v": BLOB_VERSION, "kid": self.key_id, "nonce": _b64e(nonce), "ciphertext": _b64e(ct)}

    def decrypt(self, blob: Dict[str, Any], *, aad: str) -> str:
        if not is_encrypted_blob(blob):
            raise CipherError("Unsupported encrypted blob.")
        try:
            pt = self._aes.decrypt(_b64d(str(blob["nonce"])), _b64d(str(blob["ciphertext"])), aad.encode("utf-8"))
        except (InvalidTag, ValueError) as e:
            raise CipherError("Unable to decrypt password.") from e
        return pt.decode("utf-8")

    # The alias id is bound as associated data so blobs cannot be swapped between aliases.
    def seal_document(self, doc: Dict[str, Any]) -> Dict[str, Any]:
        out = dict(doc)
        out["aliases"] = [
            {**a, "password": self.encrypt(str(a["password"]), aad=str(a.get("id", "")))} for a in (doc.get("aliases") or [])
        ]
        return out

    def open_document(self, doc: Dict[str, Any]) -> Dict[str, Any]:
        out = dict(doc)
        raw = doc.get("aliases") or []
        if not isinstance(raw, list):
            raise CipherError("Alias list is not an array.")
        aliases = []
        for a in raw:
            if not isinstance(a, dict):
                raise CipherError("Alias entry is not an object.")
            pw = a.get("password")
            if is_encrypted_blob(pw):
                a = {**a, "password": self.decrypt(pw, aad=str(a.get("id", "")))}
            aliases.append(a)
        out["aliases"] = aliases
        return out
