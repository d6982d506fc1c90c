"""On-disk token envelope codec.

Without a key the envelope is the plain JSON credential pair. With a key it
is a versioned AES-256-GCM container::

    {"v": 1, "nonce": "<b64>", "tag": "<b64>", "ciphertext": "<b64>"}

A fresh random nonce is drawn for every encode call. Decoding verifies the
authentication tag before any plaintext is returned.
"""

import base64
import binascii
import hashlib
import os
from typing import Any

import orjson
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from pydantic import ValidationError

from tweek_auth.auth.models import CredentialPair
from tweek_auth.exceptions import ClassifiedError, ErrorKind


ENVELOPE_VERSION = 1
NONCE_SIZE = 12
TAG_SIZE = 16
KEY_SIZE = 32


def derive_key(material: str) -> bytes:
    """Derive a 32-byte AES key from arbitrary-length key material."""
    return hashlib.sha256(material.encode("utf-8")).digest()


def _b64encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _b64decode(value: Any, field: str) -> bytes:
    if not isinstance(value, str):
        raise ClassifiedError(
            ErrorKind.INTERNAL,
            f"Token envelope field '{field}' is missing or not a string",
        )
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ClassifiedError(
            ErrorKind.INTERNAL, f"Token envelope field '{field}' is not valid base64"
        ) from e


def encrypt_payload(plaintext: bytes, key_material: str) -> dict[str, Any]:
    """Encrypt ``plaintext`` into a version 1 envelope mapping."""
    nonce = os.urandom(NONCE_SIZE)
    sealed = AESGCM(derive_key(key_material)).encrypt(nonce, plaintext, None)
    # AESGCM appends the tag to the ciphertext.
    ciphertext, tag = sealed[:-TAG_SIZE], sealed[-TAG_SIZE:]
    return {
        "v": ENVELOPE_VERSION,
        "nonce": _b64encode(nonce),
        "tag": _b64encode(tag),
        "ciphertext": _b64encode(ciphertext),
    }


def decrypt_payload(envelope: dict[str, Any], key_material: str) -> bytes:
    """Verify and decrypt a version 1 envelope mapping.

    Raises:
        ClassifiedError: ``FORMAT_UNSUPPORTED`` for an unknown version,
            ``INTERNAL`` for malformed fields or a failed tag check

    """
    version = envelope.get("v")
    if version != ENVELOPE_VERSION or isinstance(version, bool):
        raise ClassifiedError(
            ErrorKind.FORMAT_UNSUPPORTED,
            "Unsupported tokens encryption format",
            details={"version": version},
        )

    nonce = _b64decode(envelope.get("nonce"), "nonce")
    tag = _b64decode(envelope.get("tag"), "tag")
    ciphertext = _b64decode(envelope.get("ciphertext"), "ciphertext")
    if len(nonce) != NONCE_SIZE or len(tag) != TAG_SIZE:
        raise ClassifiedError(
            ErrorKind.INTERNAL, "Token envelope nonce or tag has the wrong size"
        )

    try:
        return AESGCM(derive_key(key_material)).decrypt(nonce, ciphertext + tag, None)
    except InvalidTag as e:
        raise ClassifiedError(
            ErrorKind.INTERNAL,
            "Failed to decrypt tokens: wrong key or tampered file",
        ) from e


def _is_envelope(document: dict[str, Any]) -> bool:
    return "v" in document or "ciphertext" in document


def encode_credentials(pair: CredentialPair, key_material: str | None) -> bytes:
    """Serialize ``pair`` for disk, encrypting when key material is given."""
    plaintext = orjson.dumps(pair.to_storage_dict(), option=orjson.OPT_INDENT_2)
    if not key_material:
        return plaintext
    return orjson.dumps(encrypt_payload(plaintext, key_material))


def decode_credentials(data: bytes, key_material: str | None) -> CredentialPair:
    """Parse bytes produced by ``encode_credentials``.

    Raises:
        ClassifiedError: ``FORMAT_UNSUPPORTED`` for unknown or unexpected
            envelope formats, ``INTERNAL`` for any parse or crypto failure

    """
    document = _load_object(data, "tokens file")

    if key_material:
        if not _is_envelope(document):
            raise ClassifiedError(
                ErrorKind.FORMAT_UNSUPPORTED,
                "Unsupported tokens encryption format",
                details={"version": None},
            )
        document = _load_object(decrypt_payload(document, key_material), "decrypted tokens")
    elif _is_envelope(document):
        raise ClassifiedError(
            ErrorKind.INTERNAL,
            "Tokens file is encrypted but no encryption key is configured",
        )

    try:
        return CredentialPair.model_validate(document)
    except ValidationError as e:
        fields = sorted({str(err["loc"][0]) for err in e.errors() if err["loc"]})
        raise ClassifiedError(
            ErrorKind.INTERNAL,
            "Tokens file is missing required fields",
            details={"fields": fields},
        ) from e


def _load_object(data: bytes, what: str) -> dict[str, Any]:
    try:
        document = orjson.loads(data)
    except orjson.JSONDecodeError as e:
        raise ClassifiedError(ErrorKind.INTERNAL, f"Failed to parse {what}") from e
    if not isinstance(document, dict):
        raise ClassifiedError(
            ErrorKind.INTERNAL, f"Invalid {what}: expected a JSON object"
        )
    return document


__all__ = [
    "ENVELOPE_VERSION",
    "decode_credentials",
    "decrypt_payload",
    "derive_key",
    "encode_credentials",
    "encrypt_payload",
]
