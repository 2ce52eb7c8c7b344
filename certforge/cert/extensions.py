"""Basic Constraints, Key Usage, Subject/Authority Key Identifier builders and decoders."""
import enum
import hashlib
from typing import NamedTuple, Optional

from pyasn1_modules import rfc5280

from certforge.cert import oids
from certforge.cert.codec import decode_der, encode_der
from certforge.cert.errors import EncodingFailure, MalformedEncoding
from certforge.cert.model import Certificate, Extension, SubjectPublicKeyInfo


class KeyUsage(enum.IntFlag):
    """KeyUsage bits; the value of each flag is 1 << (RFC 5280 bit number)."""
    DIGITAL_SIGNATURE = 1 << 0
    CONTENT_COMMITMENT = 1 << 1
    KEY_ENCIPHERMENT = 1 << 2
    DATA_ENCIPHERMENT = 1 << 3
    KEY_AGREEMENT = 1 << 4
    KEY_CERT_SIGN = 1 << 5
    CRL_SIGN = 1 << 6
    ENCIPHER_ONLY = 1 << 7
    DECIPHER_ONLY = 1 << 8

    def to_bits(self) -> str:
        """Bit string, bit 0 first, with trailing zero bits trimmed (DER)."""
        bits = "".join("1" if self & (1 << n) else "0" for n in range(len(KeyUsage)))
        return bits.rstrip("0")

    @classmethod
    def from_bits(cls, bits: str) -> "KeyUsage":
        usage = cls(0)
        for n, bit in enumerate(bits):
            if bit == "1":
                if n >= len(cls):
                    raise MalformedEncoding(f"unknown keyUsage bit {n}")
                usage |= cls(1 << n)
        return usage


CA_KEY_USAGE = KeyUsage.KEY_CERT_SIGN | KeyUsage.CRL_SIGN
SERVER_KEY_USAGE = KeyUsage.DIGITAL_SIGNATURE | KeyUsage.KEY_ENCIPHERMENT


class BasicConstraints(NamedTuple):
    is_ca: bool
    path_length: Optional[int] = None


def basic_constraints(is_ca: bool, path_length: Optional[int] = None) -> Extension:
    """
    Build the Basic Constraints extension.

    Critical whenever is_ca is set. pathLenConstraint is only written when
    a bound is given, and only makes sense for a CA.
    """
    if path_length is not None:
        if not is_ca:
            raise EncodingFailure("pathLenConstraint requires cA=TRUE")
        if path_length < 0:
            raise EncodingFailure("pathLenConstraint must not be negative")
    value = rfc5280.BasicConstraints()
    value['cA'] = is_ca
    if path_length is not None:
        value['pathLenConstraint'] = path_length
    return Extension(oid=oids.BASIC_CONSTRAINTS, critical=is_ca, value=encode_der(value))


def key_usage(usage: KeyUsage) -> Extension:
    """Build the Key Usage extension, always critical."""
    bits = KeyUsage(usage).to_bits()
    if not bits:
        raise EncodingFailure("keyUsage needs at least one bit set")
    value = rfc5280.KeyUsage(binValue=bits)
    return Extension(oid=oids.KEY_USAGE, critical=True, value=encode_der(value))


def key_identifier(spki: SubjectPublicKeyInfo) -> bytes:
    """SHA-1 over the subjectPublicKey BIT STRING contents (RFC 5280 4.2.1.2, method 1)."""
    return hashlib.sha1(spki.public_key).digest()


def subject_key_identifier(key_id: bytes) -> Extension:
    value = rfc5280.SubjectKeyIdentifier(key_id)
    return Extension(oid=oids.SUBJECT_KEY_IDENTIFIER, critical=False, value=encode_der(value))


def authority_key_identifier(key_id: bytes) -> Extension:
    value = rfc5280.AuthorityKeyIdentifier()
    value['keyIdentifier'] = key_id
    return Extension(oid=oids.AUTHORITY_KEY_IDENTIFIER, critical=False, value=encode_der(value))


def decode_basic_constraints(payload: bytes) -> BasicConstraints:
    value = decode_der(payload, rfc5280.BasicConstraints())
    path_length = value.getComponentByName('pathLenConstraint', None, instantiate=False)
    return BasicConstraints(
        is_ca=bool(value['cA']),
        path_length=None if path_length is None else int(path_length),
    )


def decode_key_usage(payload: bytes) -> KeyUsage:
    bits = decode_der(payload, rfc5280.KeyUsage()).asBinary()
    if bits.endswith("0"):
        raise MalformedEncoding("keyUsage has trailing zero bits")
    return KeyUsage.from_bits(bits)


def decode_key_identifier(payload: bytes) -> bytes:
    return decode_der(payload, rfc5280.SubjectKeyIdentifier()).asOctets()


def decode_authority_key_identifier(payload: bytes) -> Optional[bytes]:
    value = decode_der(payload, rfc5280.AuthorityKeyIdentifier())
    key_id = value.getComponentByName('keyIdentifier', None, instantiate=False)
    return None if key_id is None else key_id.asOctets()


EXTENSION_DECODERS = {
    oids.BASIC_CONSTRAINTS: decode_basic_constraints,
    oids.KEY_USAGE: decode_key_usage,
    oids.SUBJECT_KEY_IDENTIFIER: decode_key_identifier,
    oids.AUTHORITY_KEY_IDENTIFIER: decode_authority_key_identifier,
}


def decode_extension(extension: Extension):
    """Decode a known extension payload; unknown OIDs return the raw bytes."""
    decoder = EXTENSION_DECODERS.get(extension.oid)
    if decoder is None:
        return extension.value
    return decoder(extension.value)


def get_subject_key_identifier(certificate: Certificate) -> Optional[bytes]:
    extension = certificate.get_extension(oids.SUBJECT_KEY_IDENTIFIER)
    return None if extension is None else decode_key_identifier(extension.value)


def get_authority_key_identifier(certificate: Certificate) -> Optional[bytes]:
    extension = certificate.get_extension(oids.AUTHORITY_KEY_IDENTIFIER)
    return None if extension is None else decode_authority_key_identifier(extension.value)


def describe(certificate: Certificate) -> list[str]:
    """One human-readable line per extension, for script output."""
    lines = []
    for extension in certificate.tbs.extensions:
        value = decode_extension(extension)
        if isinstance(value, bytes):
            value = value.hex()
        elif isinstance(value, KeyUsage):
            value = ", ".join(flag.name for flag in KeyUsage if flag in value)
        marker = " (critical)" if extension.critical else ""
        lines.append(f"{oids.name_for(extension.oid)}{marker}: {value}")
    return lines
