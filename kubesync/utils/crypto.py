"""Secret cipher — deterministic symmetric encryption of secret values.

Both the key and the initialization vector are derived from the passphrase
alone, so anything that knows the passphrase can decrypt without a separate
salt store, and encrypting the same value twice yields the same ciphertext
(which keeps spec files stable across reverse-sync runs).
"""

from __future__ import annotations

import base64

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

KEY_LENGTH = 32  # AES-256
IV_LENGTH = 16
SALT_LENGTH = 16

# scrypt cost parameters
SCRYPT_N = 2**14
SCRYPT_R = 8
SCRYPT_P = 1


def encrypt(text: str, key: str) -> str:
    """Encrypt *text* and return the base64-encoded ciphertext.

    Args:
        text: Plaintext to encrypt.
        key: Secret passphrase.
    """
    derived_key, iv = _key_and_iv(key)
    padder = padding.PKCS7(algorithms.AES.block_size).padder()
    padded = padder.update(text.encode("utf-8")) + padder.finalize()
    encryptor = Cipher(algorithms.AES(derived_key), modes.CBC(iv)).encryptor()
    encrypted = encryptor.update(padded) + encryptor.finalize()
    return base64.b64encode(encrypted).decode("ascii")


def decrypt(text: str, key: str) -> str:
    """Decrypt base64-encoded *text* produced by :func:`encrypt` with the same *key*.

    Raises:
        ValueError: If the ciphertext is malformed or the key is wrong.
    """
    derived_key, iv = _key_and_iv(key)
    encrypted = base64.b64decode(text)
    decryptor = Cipher(algorithms.AES(derived_key), modes.CBC(iv)).decryptor()
    padded = decryptor.update(encrypted) + decryptor.finalize()
    unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
    plain = unpadder.update(padded) + unpadder.finalize()
    return plain.decode("utf-8")


def derive_key(key: str, length: int = KEY_LENGTH) -> bytes:
    """Derive *length* bytes from *key* with scrypt.

    The salt is the passphrase repeated and truncated to ``SALT_LENGTH``
    characters, which makes the derivation reproducible from the
    passphrase alone.
    """
    if not key:
        raise ValueError("Encryption key must not be empty")
    salt = (key * (SALT_LENGTH // len(key) + 1))[:SALT_LENGTH]
    kdf = Scrypt(salt=salt.encode("utf-8"), length=length, n=SCRYPT_N, r=SCRYPT_R, p=SCRYPT_P)
    return kdf.derive(key.encode("utf-8"))


def _key_and_iv(key: str) -> tuple[bytes, bytes]:
    derived_key = derive_key(key)
    iv = derive_key(derived_key.hex(), IV_LENGTH)
    return derived_key, iv
