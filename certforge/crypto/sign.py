"""RSA signing service: keygen, public-key export, PKCS#1 v1.5 over a SHA-256 digest."""
from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.hazmat.primitives.asymmetric.utils import Prehashed

from certforge.cert.errors import DecodingFailure, SigningFailure


DEFAULT_KEY_SIZE = 2048
PUBLIC_EXPONENT = 65537


class RSASigner:
    """
    Signing capability handed to the certificate builder.

    The keypair is a cryptography RSAPrivateKey; digests are SHA-256 and are
    signed as-is (no second hashing).
    """

    digest_size = 32

    def generate_keypair(self, bits: int = DEFAULT_KEY_SIZE) -> rsa.RSAPrivateKey:
        """
        Generate an RSA keypair. May block for a noticeable time on large sizes.

        Args:
            bits: RSA modulus size in bits

        Returns:
            RSA private key object
        """
        return rsa.generate_private_key(
            public_exponent=PUBLIC_EXPONENT,
            key_size=bits,
            backend=default_backend()
        )

    def export_public_key(self, keypair: rsa.RSAPrivateKey) -> tuple[int, int]:
        """Return (modulus, exponent) of the keypair's public half."""
        numbers = keypair.public_key().public_numbers()
        return numbers.n, numbers.e

    def sign(self, keypair: rsa.RSAPrivateKey, digest: bytes) -> bytes:
        """
        Sign a pre-computed SHA-256 digest with PKCS#1 v1.5 padding.

        Raises:
            SigningFailure: the key or backend rejected the operation
        """
        if len(digest) != self.digest_size:
            raise SigningFailure(f"expected a {self.digest_size}-byte SHA-256 digest, got {len(digest)} bytes")
        try:
            return keypair.sign(
                digest,
                padding.PKCS1v15(),
                Prehashed(hashes.SHA256())
            )
        except (ValueError, TypeError, UnsupportedAlgorithm) as e:
            raise SigningFailure(f"RSA signing failed: {e}") from e

    def verify(self, public_key: tuple[int, int], digest: bytes, signature: bytes) -> bool:
        """
        Verify a PKCS#1 v1.5 signature over a SHA-256 digest.

        Args:
            public_key: (modulus, exponent)
            digest: Pre-computed SHA-256 digest
            signature: Signature to verify

        Returns:
            True if signature is valid, False otherwise
        """
        modulus, exponent = public_key
        key = rsa.RSAPublicNumbers(exponent, modulus).public_key(default_backend())
        try:
            key.verify(
                signature,
                digest,
                padding.PKCS1v15(),
                Prehashed(hashes.SHA256())
            )
            return True
        except (InvalidSignature, ValueError):
            return False


def private_key_to_der(private_key: rsa.RSAPrivateKey) -> bytes:
    """PKCS#1 RSAPrivateKey DER."""
    return private_key.private_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    )


def private_key_to_pkcs8(private_key: rsa.RSAPrivateKey) -> bytes:
    """PKCS#8 PrivateKeyInfo DER, the content of a "PRIVATE KEY" PEM block."""
    return private_key.private_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )


def load_private_key(data: bytes) -> rsa.RSAPrivateKey:
    """
    Load an RSA private key from PEM (PKCS#1 or PKCS#8) or DER bytes.

    Raises:
        DecodingFailure: data is not an unencrypted RSA private key
    """
    try:
        if data.lstrip().startswith(b"-----BEGIN"):
            private_key = serialization.load_pem_private_key(
                data,
                password=None,
                backend=default_backend()
            )
        else:
            private_key = serialization.load_der_private_key(
                data,
                password=None,
                backend=default_backend()
            )
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise DecodingFailure(f"cannot load private key: {e}") from e
    if not isinstance(private_key, rsa.RSAPrivateKey):
        raise DecodingFailure("private key is not an RSA key")
    return private_key
