"""Certificate builder: assemble the TBSCertificate, attach extensions, hash and sign."""
import hashlib
from datetime import datetime, timedelta, timezone
from typing import Optional

from cryptography import x509

from certforge.cert import codec, extensions, oids
from certforge.cert.errors import (
    CertificateError, MissingIssuerIdentifier, PolicyViolation, SigningFailure
)
from certforge.cert.model import (
    NULL_PARAMETERS, AlgorithmIdentifier, Certificate, Extension, Name,
    SubjectPublicKeyInfo, TBSCertificate, Validity
)
from certforge.common.protocol import CertificateRequest, ExtensionPolicy
from certforge.crypto.sign import RSASigner


SHA256_WITH_RSA = AlgorithmIdentifier(
    oid=oids.SHA256_WITH_RSA_ENCRYPTION, parameters=NULL_PARAMETERS
)
RSA_ENCRYPTION = AlgorithmIdentifier(oid=oids.RSA_ENCRYPTION, parameters=NULL_PARAMETERS)


def validity_window(days: int, not_before: Optional[datetime] = None) -> Validity:
    """
    Validity starting at not_before (default: now) and lasting `days` days.

    Timestamps are converted to UTC and truncated to whole seconds, the
    resolution DER times carry.
    """
    start = not_before or datetime.now(timezone.utc)
    if start.tzinfo is None:
        start = start.replace(tzinfo=timezone.utc)
    start = start.astimezone(timezone.utc).replace(microsecond=0)
    return Validity(not_before=start, not_after=start + timedelta(days=days))


def rsa_subject_public_key_info(modulus: int, exponent: int) -> SubjectPublicKeyInfo:
    return SubjectPublicKeyInfo(
        algorithm=RSA_ENCRYPTION,
        public_key=codec.encode_rsa_public_key(modulus, exponent),
    )


def build_extensions(
    policy: ExtensionPolicy,
    spki: SubjectPublicKeyInfo,
    is_ca: Optional[bool] = None,
    path_length: Optional[int] = None,
    issuer_key_id: Optional[bytes] = None,
) -> tuple[Extension, ...]:
    """
    Extension set for a policy.

    CA_ROOT: critical basicConstraints cA=TRUE (+ pathLen when given), critical
    keyUsage keyCertSign|cRLSign, SKI, and AKI (own SKI unless an issuer key id
    is given).

    SERVER_LEAF: critical keyUsage digitalSignature|keyEncipherment, SKI, and AKI
    equal to the issuer's SKI, which must be supplied.
    """
    try:
        policy = ExtensionPolicy(policy)
    except ValueError as e:
        raise PolicyViolation(f"unsupported extension policy {policy!r}") from e
    key_id = extensions.key_identifier(spki)

    if policy is ExtensionPolicy.CA_ROOT:
        if is_ca is False:
            raise PolicyViolation("CA_ROOT policy requires basicConstraints cA=TRUE")
        return (
            extensions.basic_constraints(True, path_length),
            extensions.key_usage(extensions.CA_KEY_USAGE),
            extensions.subject_key_identifier(key_id),
            extensions.authority_key_identifier(issuer_key_id or key_id),
        )

    if is_ca:
        raise PolicyViolation("SERVER_LEAF policy cannot carry basicConstraints cA=TRUE")
    if path_length is not None:
        raise PolicyViolation("SERVER_LEAF policy cannot carry a pathLenConstraint")
    if not issuer_key_id:
        raise MissingIssuerIdentifier("issuer Subject Key Identifier is required for a leaf")
    return (
        extensions.key_usage(extensions.SERVER_KEY_USAGE),
        extensions.subject_key_identifier(key_id),
        extensions.authority_key_identifier(issuer_key_id),
    )


def build_certificate(
    subject: Name,
    issuer: Name,
    subject_public_key: tuple[int, int],
    validity: Validity,
    policy: ExtensionPolicy,
    signing_key,
    serial_number: Optional[int] = None,
    is_ca: Optional[bool] = None,
    path_length: Optional[int] = None,
    issuer_key_id: Optional[bytes] = None,
    signer: Optional[RSASigner] = None,
) -> Certificate:
    """
    Build and sign one certificate.

    Args:
        subject: Subject name
        issuer: Issuer name (equal to subject when self-signed)
        subject_public_key: (modulus, exponent) of the certified key
        validity: Validity window
        policy: Extension policy
        signing_key: Keypair the signer signs with (the issuer's)
        serial_number: Positive serial; random when omitted
        is_ca: Requested cA flag, checked against the policy
        path_length: pathLenConstraint for CA certificates
        issuer_key_id: Issuer's Subject Key Identifier (required for leaves)
        signer: Signing service; RSASigner by default

    Returns:
        Signed Certificate

    Raises:
        EncodingFailure, PolicyViolation, MissingIssuerIdentifier, SigningFailure
    """
    signer = signer or RSASigner()
    spki = rsa_subject_public_key_info(*subject_public_key)

    tbs = TBSCertificate(
        version=3,
        serial_number=x509.random_serial_number() if serial_number is None else serial_number,
        signature=SHA256_WITH_RSA,
        issuer=issuer,
        validity=validity,
        subject=subject,
        subject_public_key_info=spki,
        extensions=build_extensions(policy, spki, is_ca, path_length, issuer_key_id),
    )

    # signature covers these exact bytes; codec.encode is deterministic
    digest = hashlib.sha256(codec.encode(tbs)).digest()
    try:
        signature = signer.sign(signing_key, digest)
    except CertificateError:
        raise
    except Exception as e:
        raise SigningFailure(f"signing service fault: {e}") from e
    if not signature:
        raise SigningFailure("signing service returned an empty signature")

    return Certificate(tbs=tbs, signature_algorithm=SHA256_WITH_RSA, signature_value=signature)


def build_ca_certificate(
    subject: Name,
    keypair,
    validity: Validity,
    path_length: Optional[int] = 0,
    serial_number: Optional[int] = None,
    signer: Optional[RSASigner] = None,
) -> Certificate:
    """Self-signed CA: issuer, subject and signing key all come from the same identity."""
    signer = signer or RSASigner()
    return build_certificate(
        subject=subject,
        issuer=subject,
        subject_public_key=signer.export_public_key(keypair),
        validity=validity,
        policy=ExtensionPolicy.CA_ROOT,
        signing_key=keypair,
        serial_number=serial_number,
        is_ca=True,
        path_length=path_length,
        signer=signer,
    )


def build_server_certificate(
    subject: Name,
    subject_public_key: tuple[int, int],
    issuer_certificate: Certificate,
    issuer_key,
    validity: Validity,
    serial_number: Optional[int] = None,
    signer: Optional[RSASigner] = None,
) -> Certificate:
    """
    Server leaf signed by a CA.

    The issuer name is the CA's subject and the AKI is the CA's SKI.

    Raises:
        MissingIssuerIdentifier: the CA certificate has no SKI
        PolicyViolation: the issuer certificate is not a CA
    """
    issuer_key_id = extensions.get_subject_key_identifier(issuer_certificate)
    if not issuer_key_id:
        raise MissingIssuerIdentifier("issuer certificate has no Subject Key Identifier")
    constraints = issuer_certificate.get_extension(oids.BASIC_CONSTRAINTS)
    if constraints is None or not extensions.decode_basic_constraints(constraints.value).is_ca:
        raise PolicyViolation("issuer certificate is not a CA")

    return build_certificate(
        subject=subject,
        issuer=issuer_certificate.subject,
        subject_public_key=subject_public_key,
        validity=validity,
        policy=ExtensionPolicy.SERVER_LEAF,
        signing_key=issuer_key,
        serial_number=serial_number,
        issuer_key_id=issuer_key_id,
        signer=signer,
    )


def issue(
    request: CertificateRequest,
    keypair,
    issuer_certificate: Optional[Certificate] = None,
    issuer_key=None,
    signer: Optional[RSASigner] = None,
) -> Certificate:
    """Build a certificate for `keypair` from a CertificateRequest."""
    signer = signer or RSASigner()
    validity = validity_window(request.validity_days, request.not_before)
    subject = Name.from_common_name(request.common_name)
    public_key = signer.export_public_key(keypair)

    if request.policy is ExtensionPolicy.CA_ROOT:
        return build_certificate(
            subject=subject,
            issuer=subject,
            subject_public_key=public_key,
            validity=validity,
            policy=request.policy,
            signing_key=keypair,
            serial_number=request.serial_number,
            is_ca=request.is_ca,
            path_length=request.path_length,
            signer=signer,
        )

    if request.is_ca:
        raise PolicyViolation("SERVER_LEAF policy cannot carry basicConstraints cA=TRUE")
    if request.path_length is not None:
        raise PolicyViolation("SERVER_LEAF policy cannot carry a pathLenConstraint")
    if issuer_certificate is None or issuer_key is None:
        raise MissingIssuerIdentifier("a leaf needs its issuer's certificate and key")
    return build_server_certificate(
        subject=subject,
        subject_public_key=public_key,
        issuer_certificate=issuer_certificate,
        issuer_key=issuer_key,
        validity=validity,
        serial_number=request.serial_number,
        signer=signer,
    )


def verify_certificate(
    certificate: Certificate,
    issuer_public_key: tuple[int, int],
    signer: Optional[RSASigner] = None,
) -> bool:
    """Check signatureValue against the issuer key over the DER of the TBSCertificate."""
    signer = signer or RSASigner()
    digest = hashlib.sha256(codec.encode(certificate.tbs)).digest()
    return signer.verify(issuer_public_key, digest, certificate.signature_value)
