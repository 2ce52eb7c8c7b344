"""Independent X.509 validation of issued certificates: signature, validity, CN, key-id chain."""
from datetime import datetime, timezone

from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding
from cryptography.x509.oid import ExtensionOID, NameOID


class CertValidationError(Exception):
    """Certificate validation failed."""
    pass


def load_cert(data: bytes) -> x509.Certificate:
    """
    Parse a certificate with cryptography, accepting PEM or DER.

    Raises:
        CertValidationError: the bytes are not a parseable X.509 certificate
    """
    try:
        if data.lstrip().startswith(b"-----BEGIN"):
            return x509.load_pem_x509_certificate(data, default_backend())
        return x509.load_der_x509_certificate(data, default_backend())
    except ValueError as e:
        raise CertValidationError(f"unparseable certificate: {e}") from e


def _extension_value(cert: x509.Certificate, oid):
    try:
        return cert.extensions.get_extension_for_oid(oid).value
    except x509.ExtensionNotFound:
        return None


def validate_cert(
    cert_data: bytes,
    ca_cert_data: bytes,
    expected_cn: str = None,
    now: datetime = None
) -> tuple[bool, str]:
    """
    Validate a certificate against its CA certificate.

    Checks:
    - CA certificate is a CA (basicConstraints cA=TRUE, keyCertSign)
    - Certificate is signed by CA
    - Issuer name equals CA subject, AKI equals CA SKI
    - Certificate is within validity period
    - CN matches expected name (if provided)

    Args:
        cert_data: Certificate to validate (PEM or DER)
        ca_cert_data: CA certificate (PEM or DER)
        expected_cn: Expected Common Name (optional)
        now: Point in time to check against (default: current UTC time)

    Returns:
        (is_valid, error_message) tuple
        If valid: (True, "")
        If invalid: (False, "error description")
    """
    try:
        cert = load_cert(cert_data)
        ca_cert = load_cert(ca_cert_data)
    except CertValidationError as e:
        return (False, f"BAD_CERT: {e}")

    # Check 1: issuer must be a CA allowed to sign certificates
    constraints = _extension_value(ca_cert, ExtensionOID.BASIC_CONSTRAINTS)
    if constraints is None or not constraints.ca:
        return (False, "BAD_CERT: Issuer is not a CA")
    usage = _extension_value(ca_cert, ExtensionOID.KEY_USAGE)
    if usage is not None and not usage.key_cert_sign:
        return (False, "BAD_CERT: Issuer key usage lacks keyCertSign")

    # Check 2: signature over the TBS bytes
    try:
        ca_cert.public_key().verify(
            cert.signature,
            cert.tbs_certificate_bytes,
            padding.PKCS1v15(),
            cert.signature_hash_algorithm
        )
    except (InvalidSignature, ValueError, TypeError) as e:
        return (False, f"BAD_CERT: Signature verification failed - {e!r}")

    # Check 3: chain linkage
    if cert.issuer != ca_cert.subject:
        return (False, "BAD_CERT: Issuer name does not match CA subject")
    ski = _extension_value(ca_cert, ExtensionOID.SUBJECT_KEY_IDENTIFIER)
    aki = _extension_value(cert, ExtensionOID.AUTHORITY_KEY_IDENTIFIER)
    if ski is not None and aki is not None and aki.key_identifier != ski.digest:
        return (False, "BAD_CERT: Authority Key Identifier does not match CA Subject Key Identifier")

    # Check 4: validity period
    now = now or datetime.now(timezone.utc)
    if now < cert.not_valid_before_utc:
        return (False, f"BAD_CERT: Certificate not yet valid (starts {cert.not_valid_before_utc})")
    if now > cert.not_valid_after_utc:
        return (False, f"BAD_CERT: Certificate expired (ended {cert.not_valid_after_utc})")

    # Check 5: CN
    if expected_cn and get_cert_cn(cert) != expected_cn:
        return (False, f"BAD_CERT: CN mismatch (expected '{expected_cn}')")

    return (True, "")


def get_cert_fingerprint(cert_data: bytes) -> str:
    """
    Get SHA-256 fingerprint of certificate.

    Args:
        cert_data: Certificate in PEM or DER format

    Returns:
        Hex fingerprint string
    """
    return load_cert(cert_data).fingerprint(hashes.SHA256()).hex()


def get_cert_cn(cert: x509.Certificate) -> str:
    """Extract Common Name from a parsed certificate ("" if absent)."""
    cn_attrs = cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
    if cn_attrs:
        return cn_attrs[0].value
    return ""
