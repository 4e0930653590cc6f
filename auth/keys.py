"""
auth/keys.py -- RSA signing key material: generate, persist, load.

Access tokens are signed with the private key and verified with the public
key (RS256). Keys are loaded once at startup into an immutable KeyPair and
injected into the TokenCodec; nothing mutates them afterwards.

On-disk format:
  private key -- PKCS#1 PEM ("RSA PRIVATE KEY"), mode 0600
  public key  -- SubjectPublicKeyInfo PEM ("PUBLIC KEY"), mode 0644

Loading checks the PEM block type before parsing, then the key type after.
Any failure raises KeyMaterialError; the app refuses to start rather than run
with keys it cannot trust.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import cached_property
from pathlib import Path

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from auth.errors import KeyMaterialError

logger = logging.getLogger("authgate.auth.keys")

MIN_KEY_BITS = 2048

_PRIVATE_BLOCK = "RSA PRIVATE KEY"
_PUBLIC_BLOCK = "PUBLIC KEY"


@dataclass(frozen=True)
class KeyPair:
    private_key: rsa.RSAPrivateKey
    public_key: rsa.RSAPublicKey

    @cached_property
    def private_pem(self) -> str:
        return _private_bytes(self.private_key).decode("ascii")

    @cached_property
    def public_pem(self) -> str:
        return _public_bytes(self.public_key).decode("ascii")


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------


def generate_key_pair(bits: int = MIN_KEY_BITS) -> KeyPair:
    """Generate a fresh RSA key pair. Refuses moduli shorter than 2048 bits."""
    if bits < MIN_KEY_BITS:
        raise KeyMaterialError(f"RSA key size must be at least {MIN_KEY_BITS} bits, got {bits}")
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=bits)
    return KeyPair(private_key=private_key, public_key=private_key.public_key())


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------


def _private_bytes(key: rsa.RSAPrivateKey) -> bytes:
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    )


def _public_bytes(key: rsa.RSAPublicKey) -> bytes:
    return key.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )


def _write(path: Path, data: bytes, mode: int) -> None:
    path.parent.mkdir(mode=0o755, parents=True, exist_ok=True)
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, mode)
    with os.fdopen(fd, "wb") as fh:
        fh.write(data)
    # os.open only applies mode to newly created files.
    os.chmod(path, mode)


def save_private_key_pem(path: str | Path, key: rsa.RSAPrivateKey) -> None:
    """Write the private key as PKCS#1 PEM, readable by the owner only."""
    try:
        _write(Path(path), _private_bytes(key), 0o600)
    except OSError as exc:
        raise KeyMaterialError(f"write private key {path}: {exc}") from exc


def save_public_key_pem(path: str | Path, key: rsa.RSAPublicKey) -> None:
    """Write the public key as SubjectPublicKeyInfo PEM, world-readable."""
    try:
        _write(Path(path), _public_bytes(key), 0o644)
    except OSError as exc:
        raise KeyMaterialError(f"write public key {path}: {exc}") from exc


def generate_and_save_key_pair(private_path: str | Path, public_path: str | Path, bits: int = MIN_KEY_BITS) -> KeyPair:
    key_pair = generate_key_pair(bits)
    save_private_key_pem(private_path, key_pair.private_key)
    save_public_key_pem(public_path, key_pair.public_key)
    return key_pair


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def _read_pem(path: Path, expected_block: str, kind: str) -> bytes:
    try:
        data = path.read_bytes()
    except OSError as exc:
        raise KeyMaterialError(f"read {kind} key file {path}: {exc}") from exc

    block_type = None
    for line in data.decode("ascii", errors="replace").splitlines():
        line = line.strip()
        if line.startswith("-----BEGIN ") and line.endswith("-----"):
            block_type = line[len("-----BEGIN ") : -len("-----")]
            break
    if block_type is None:
        raise KeyMaterialError(f"{path}: failed to decode PEM block")
    if block_type != expected_block:
        raise KeyMaterialError(f"{path}: invalid PEM block type: expected {expected_block}, got {block_type}")
    return data


def load_private_key_pem(path: str | Path) -> rsa.RSAPrivateKey:
    path = Path(path)
    data = _read_pem(path, _PRIVATE_BLOCK, "private")
    try:
        key = serialization.load_pem_private_key(data, password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        raise KeyMaterialError(f"{path}: parse private key: {exc}") from exc
    if not isinstance(key, rsa.RSAPrivateKey):
        raise KeyMaterialError(f"{path}: not an RSA private key")
    return key


def load_public_key_pem(path: str | Path) -> rsa.RSAPublicKey:
    path = Path(path)
    data = _read_pem(path, _PUBLIC_BLOCK, "public")
    try:
        key = serialization.load_pem_public_key(data)
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        raise KeyMaterialError(f"{path}: parse public key: {exc}") from exc
    if not isinstance(key, rsa.RSAPublicKey):
        raise KeyMaterialError(f"{path}: not an RSA public key")
    return key


def load_key_pair(private_path: str | Path, public_path: str | Path) -> KeyPair:
    """Load both halves and confirm they belong to the same key.

    A public key that does not match the private key would make every token
    this process signs fail verification -- better to fail at startup.
    """
    private_key = load_private_key_pem(private_path)
    public_key = load_public_key_pem(public_path)
    if private_key.public_key().public_numbers() != public_key.public_numbers():
        raise KeyMaterialError(f"{public_path} does not match private key {private_path}")
    if private_key.key_size < MIN_KEY_BITS:
        raise KeyMaterialError(f"{private_path}: RSA key is {private_key.key_size} bits, need at least {MIN_KEY_BITS}")
    return KeyPair(private_key=private_key, public_key=public_key)


def ensure_key_pair(
    private_path: str | Path,
    public_path: str | Path,
    bits: int = MIN_KEY_BITS,
    generate_missing: bool = False,
) -> KeyPair:
    """Load the configured key pair, generating it first when allowed.

    Dev mode (generate_missing=True): if neither file exists, a new pair is
    written with a warning. Tokens signed by a previous pair stop verifying.

    Production: missing files are a hard failure. Partial state (one file
    present, the other missing) is always an error -- regenerating would
    silently discard a key someone may depend on.
    """
    private_exists = Path(private_path).exists()
    public_exists = Path(public_path).exists()
    if not private_exists and not public_exists and generate_missing:
        logger.warning("Signing keys not found -- generating a new %d-bit RSA key pair at %s", bits, private_path)
        return generate_and_save_key_pair(private_path, public_path, bits)
    return load_key_pair(private_path, public_path)
