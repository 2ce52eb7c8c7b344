"""DER + PEM persistence for certificates and RSA private keys."""
import os
from pathlib import Path

from certforge.cert import codec
from certforge.cert.model import Certificate
from certforge.common.utils import pem_decode, pem_encode
from certforge.crypto.sign import load_private_key, private_key_to_der, private_key_to_pkcs8


CERT_MODE = 0o644
KEY_MODE = 0o600


def _write(path: Path, data: bytes, mode: int) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "wb") as f:
        f.write(data)
    os.chmod(path, mode)
    return path


def save_certificate(prefix: str, certificate: Certificate) -> tuple[Path, Path]:
    """
    Write <prefix>.der and <prefix>.pem.

    Returns:
        (der_path, pem_path)
    """
    der = codec.encode(certificate)
    der_path = _write(Path(f"{prefix}.der"), der, CERT_MODE)
    pem_path = _write(Path(f"{prefix}.pem"), pem_encode(der, "CERTIFICATE").encode(), CERT_MODE)
    return der_path, pem_path


def save_private_key(prefix: str, private_key) -> tuple[Path, Path]:
    """
    Write <prefix>.der (PKCS#1) and <prefix>.pem (PKCS#8 "PRIVATE KEY"), owner-only.

    Returns:
        (der_path, pem_path)
    """
    der_path = _write(Path(f"{prefix}.der"), private_key_to_der(private_key), KEY_MODE)
    pem = pem_encode(private_key_to_pkcs8(private_key), "PRIVATE KEY")
    pem_path = _write(Path(f"{prefix}.pem"), pem.encode(), KEY_MODE)
    return der_path, pem_path


def load_certificate(path: str) -> Certificate:
    """Load a certificate from a .der or .pem file."""
    with open(path, "rb") as f:
        data = f.read()
    if data.lstrip().startswith(b"-----BEGIN"):
        data = pem_decode(data.decode("ascii"), "CERTIFICATE")
    return codec.decode(data, Certificate)


def load_key(path: str):
    """Load an RSA private key from a .der or .pem file."""
    with open(path, "rb") as f:
        return load_private_key(f.read())
