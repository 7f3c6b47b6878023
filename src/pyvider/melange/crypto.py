"""
Signing key generation for locally built packages.
"""

import os
from pathlib import Path

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from .exceptions import SigningError

KEY_SIZE = 4096


def generate_keys(key_size: int = KEY_SIZE) -> tuple[rsa.RSAPrivateKey, rsa.RSAPublicKey]:
    """Generates a new RSA key pair."""
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=key_size)
    return private_key, private_key.public_key()


def private_key_pem(private_key: rsa.RSAPrivateKey) -> bytes:
    return private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    )


def public_key_pem(public_key: rsa.RSAPublicKey) -> bytes:
    return public_key.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )


def write_key_pair(private_path: Path, key_size: int = KEY_SIZE) -> tuple[Path, Path]:
    """
    Writes `<private_path>` and `<private_path>.pub`, the pair melange signs
    packages and indexes with. Existing keys are never overwritten.
    """
    public_path = private_path.with_name(private_path.name + ".pub")
    for path in (private_path, public_path):
        if path.exists():
            raise SigningError(f"key already exists at {path}")

    private_key, public_key = generate_keys(key_size)
    try:
        private_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(private_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
        with os.fdopen(fd, "wb") as f:
            f.write(private_key_pem(private_key))
        public_path.write_bytes(public_key_pem(public_key))
    except OSError as e:
        raise SigningError(f"Could not write signing keys to {private_path}: {e}") from e
    return private_path, public_path
