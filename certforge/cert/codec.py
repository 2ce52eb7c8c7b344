"""DER codec between the certificate model and pyasn1 RFC 5280 structures.

Field tagging follows the RFC 5280 schemas from pyasn1-modules:

- TBSCertificate.version is EXPLICIT [0] and omitted when it is v1 (DER default)
- issuerUniqueID / subjectUniqueID are IMPLICIT [1] / [2] BIT STRINGs
- extensions are EXPLICIT [3]

A Name is a SEQUENCE of single-attribute SETs, written in insertion order.
"""
import re
from datetime import datetime, timezone

from pydantic import ValidationError
from pyasn1 import error as asn1_error
from pyasn1.codec.der import decoder, encoder
from pyasn1.type import char, namedtype, tag, univ, useful
from pyasn1_modules import rfc5280

from certforge.cert.errors import (
    DecodingFailure, EncodingFailure, MalformedEncoding, TruncatedInput
)
from certforge.cert.model import (
    PRINTABLE_CHARSET, AlgorithmIdentifier, AttributeTypeAndValue, Certificate, Extension, Name,
    SubjectPublicKeyInfo, TBSCertificate, Validity
)


_UTC_TIME = re.compile(r"^(\d{2})(\d{2})(\d{2})(\d{2})(\d{2})(\d{2})Z$")
_GENERALIZED_TIME = re.compile(r"^(\d{4})(\d{2})(\d{2})(\d{2})(\d{2})(\d{2})Z$")

_ISSUER_UID_TAG = tag.Tag(tag.tagClassContext, tag.tagFormatSimple, 1)
_SUBJECT_UID_TAG = tag.Tag(tag.tagClassContext, tag.tagFormatSimple, 2)
_EXTENSIONS_TAG = tag.Tag(tag.tagClassContext, tag.tagFormatConstructed, 3)

# RFC 5280 4.1.2.2: at most 20 octets, positive
MAX_SERIAL_BITS = 159

_STRING_TYPES = {
    "printable": char.PrintableString,
    "utf8": char.UTF8String,
    "ia5": char.IA5String,
    "teletex": char.TeletexString,
    "bmp": char.BMPString,
    "universal": char.UniversalString,
    "visible": char.VisibleString,
}
_STRING_TYPE_NAMES = {string_class: name for name, string_class in _STRING_TYPES.items()}


class RSAPublicKey(univ.Sequence):
    componentType = namedtype.NamedTypes(
        namedtype.NamedType('modulus', univ.Integer()),
        namedtype.NamedType('publicExponent', univ.Integer()),
    )


def encode_der(value) -> bytes:
    """DER-encode a pyasn1 value."""
    try:
        return encoder.encode(value)
    except asn1_error.PyAsn1Error as exc:
        raise EncodingFailure(f"DER encoding failed: {exc}") from exc


def decode_der(data: bytes, schema=None):
    """
    Decode exactly one DER value against a pyasn1 schema.

    Args:
        data: DER bytes
        schema: pyasn1 schema instance, or None to decode by tag alone

    Returns:
        pyasn1 value object

    Raises:
        TruncatedInput: fewer bytes than a declared length
        MalformedEncoding: tag/length/structure mismatch, trailing bytes, or
            BER that is not the canonical DER form
    """
    data = bytes(data)
    try:
        value, rest = decoder.decode(data, asn1Spec=schema)
    except asn1_error.SubstrateUnderrunError as exc:
        raise TruncatedInput(f"truncated DER input: {exc}") from exc
    except asn1_error.PyAsn1Error as exc:
        raise MalformedEncoding(f"malformed DER input: {exc}") from exc
    if rest:
        raise MalformedEncoding(f"{len(rest)} trailing byte(s) after DER value")
    # pyasn1 decodes BER leniently; only the canonical encoding is accepted
    try:
        canonical = encoder.encode(value)
    except asn1_error.PyAsn1Error as exc:
        raise MalformedEncoding(f"malformed DER input: {exc}") from exc
    if canonical != data:
        raise MalformedEncoding("non-canonical DER")
    return value


def encode_rsa_public_key(modulus: int, exponent: int) -> bytes:
    """DER of RSAPublicKey ::= SEQUENCE { modulus, publicExponent }."""
    if modulus <= 0 or exponent <= 0:
        raise EncodingFailure("RSA modulus and exponent must be positive")
    key = RSAPublicKey()
    key['modulus'] = modulus
    key['publicExponent'] = exponent
    return encode_der(key)


def decode_rsa_public_key(data: bytes) -> tuple[int, int]:
    """Return (modulus, exponent) from DER RSAPublicKey bytes."""
    key = decode_der(data, RSAPublicKey())
    return int(key['modulus']), int(key['publicExponent'])


def _oid(dotted: str) -> univ.ObjectIdentifier:
    try:
        return univ.ObjectIdentifier(dotted)
    except asn1_error.PyAsn1Error as exc:
        raise EncodingFailure(f"invalid object identifier {dotted!r}") from exc


def _octets(bits: univ.BitString, field: str) -> bytes:
    if len(bits) % 8:
        raise MalformedEncoding(f"{field} is not a whole number of octets")
    return bits.asOctets()


def _optional(sequence, name: str):
    return sequence.getComponentByName(name, None, instantiate=False)


# Name

def _directory_string(atv: AttributeTypeAndValue):
    if atv.string_type == "printable" and not PRINTABLE_CHARSET.match(atv.value):
        raise EncodingFailure(f"{atv.value!r} does not fit PrintableString")
    try:
        return _STRING_TYPES[atv.string_type](atv.value)
    except asn1_error.PyAsn1Error as exc:
        raise EncodingFailure(f"{atv.value!r} does not fit the {atv.string_type} string type") from exc


def _name_to_asn1(name: Name) -> rfc5280.Name:
    if not name.rdns:
        raise EncodingFailure("Name must contain at least one attribute")
    rdn_sequence = rfc5280.RDNSequence()
    for idx, atv in enumerate(name.rdns):
        if not atv.value:
            raise EncodingFailure(f"empty value for attribute {atv.oid}")
        attribute = rfc5280.AttributeTypeAndValue()
        attribute['type'] = _oid(atv.oid)
        attribute['value'] = encode_der(_directory_string(atv))
        rdn = rfc5280.RelativeDistinguishedName()
        rdn[0] = attribute
        rdn_sequence[idx] = rdn
    asn1_name = rfc5280.Name()
    asn1_name['rdnSequence'] = rdn_sequence
    return asn1_name


def _name_from_asn1(asn1_name) -> Name:
    rdns = []
    for rdn in asn1_name['rdnSequence']:
        if len(rdn) != 1:
            raise MalformedEncoding("multi-valued RDNs are not supported")
        attribute = rdn[0]
        value = decode_der(attribute['value'].asOctets())
        string_type = _STRING_TYPE_NAMES.get(type(value))
        if string_type is None:
            raise MalformedEncoding(f"attribute {attribute['type']} is not a supported string type")
        rdns.append(AttributeTypeAndValue(
            oid=str(attribute['type']), value=str(value), string_type=string_type
        ))
    return Name(rdns=tuple(rdns))


# Validity

def _time_to_asn1(value: datetime) -> rfc5280.Time:
    if value.tzinfo is None:
        raise EncodingFailure("certificate timestamps must be timezone-aware")
    if value.microsecond:
        raise EncodingFailure("certificate timestamps carry whole seconds only")
    value = value.astimezone(timezone.utc)
    time = rfc5280.Time()
    # RFC 5280 4.1.2.5: UTCTime through 2049, GeneralizedTime from 2050
    if 1950 <= value.year <= 2049:
        time['utcTime'] = useful.UTCTime(value.strftime('%y%m%d%H%M%SZ'))
    else:
        time['generalTime'] = useful.GeneralizedTime(
            f"{value.year:04d}" + value.strftime('%m%d%H%M%SZ')
        )
    return time


def _time_from_asn1(time) -> datetime:
    kind = time.getName()
    text = str(time.getComponent())
    match = (_UTC_TIME if kind == 'utcTime' else _GENERALIZED_TIME).match(text)
    if not match:
        raise MalformedEncoding(f"invalid {kind} value {text!r}")
    fields = [int(group) for group in match.groups()]
    if kind == 'utcTime':
        fields[0] += 1900 if fields[0] >= 50 else 2000
    elif 1950 <= fields[0] <= 2049:
        raise MalformedEncoding(f"GeneralizedTime {text!r} falls in the UTCTime range")
    try:
        return datetime(*fields, tzinfo=timezone.utc)
    except ValueError as exc:
        raise MalformedEncoding(f"invalid {kind} value {text!r}") from exc


def _validity_to_asn1(validity: Validity) -> rfc5280.Validity:
    if validity.not_after <= validity.not_before:
        raise EncodingFailure("notAfter must be later than notBefore")
    asn1_validity = rfc5280.Validity()
    asn1_validity['notBefore'] = _time_to_asn1(validity.not_before)
    asn1_validity['notAfter'] = _time_to_asn1(validity.not_after)
    return asn1_validity


def _validity_from_asn1(asn1_validity) -> Validity:
    return Validity(
        not_before=_time_from_asn1(asn1_validity['notBefore']),
        not_after=_time_from_asn1(asn1_validity['notAfter']),
    )


# AlgorithmIdentifier / SubjectPublicKeyInfo

def _algorithm_to_asn1(algorithm: AlgorithmIdentifier) -> rfc5280.AlgorithmIdentifier:
    asn1_algorithm = rfc5280.AlgorithmIdentifier()
    asn1_algorithm['algorithm'] = _oid(algorithm.oid)
    if algorithm.parameters is not None:
        asn1_algorithm['parameters'] = algorithm.parameters
    return asn1_algorithm


def _algorithm_from_asn1(asn1_algorithm) -> AlgorithmIdentifier:
    parameters = _optional(asn1_algorithm, 'parameters')
    return AlgorithmIdentifier(
        oid=str(asn1_algorithm['algorithm']),
        parameters=None if parameters is None else parameters.asOctets(),
    )


def _spki_to_asn1(spki: SubjectPublicKeyInfo) -> rfc5280.SubjectPublicKeyInfo:
    if not spki.public_key:
        raise EncodingFailure("subject public key is empty")
    asn1_spki = rfc5280.SubjectPublicKeyInfo()
    asn1_spki['algorithm'] = _algorithm_to_asn1(spki.algorithm)
    asn1_spki['subjectPublicKey'] = univ.BitString.fromOctetString(spki.public_key)
    return asn1_spki


def _spki_from_asn1(asn1_spki) -> SubjectPublicKeyInfo:
    return SubjectPublicKeyInfo(
        algorithm=_algorithm_from_asn1(asn1_spki['algorithm']),
        public_key=_octets(asn1_spki['subjectPublicKey'], 'subjectPublicKey'),
    )


# Extension

def _extension_to_asn1(extension: Extension) -> rfc5280.Extension:
    asn1_extension = rfc5280.Extension()
    asn1_extension['extnID'] = _oid(extension.oid)
    asn1_extension['critical'] = extension.critical
    asn1_extension['extnValue'] = extension.value
    return asn1_extension


def _extension_from_asn1(asn1_extension) -> Extension:
    return Extension(
        oid=str(asn1_extension['extnID']),
        critical=bool(asn1_extension['critical']),
        value=asn1_extension['extnValue'].asOctets(),
    )


# TBSCertificate / Certificate

def _tbs_to_asn1(tbs: TBSCertificate) -> rfc5280.TBSCertificate:
    if tbs.version not in (1, 2, 3):
        raise EncodingFailure(f"unsupported certificate version v{tbs.version}")
    if tbs.serial_number <= 0:
        raise EncodingFailure("serial number must be positive")
    if tbs.serial_number.bit_length() > MAX_SERIAL_BITS:
        raise EncodingFailure("serial number exceeds 20 octets")
    if tbs.extensions and tbs.version != 3:
        raise EncodingFailure("extensions require a v3 certificate")
    if (tbs.issuer_unique_id is not None or tbs.subject_unique_id is not None) and tbs.version < 2:
        raise EncodingFailure("unique identifiers require a v2 or v3 certificate")

    asn1_tbs = rfc5280.TBSCertificate()
    asn1_tbs['version'] = tbs.version - 1
    asn1_tbs['serialNumber'] = tbs.serial_number
    asn1_tbs['signature'] = _algorithm_to_asn1(tbs.signature)
    asn1_tbs['issuer'] = _name_to_asn1(tbs.issuer)
    asn1_tbs['validity'] = _validity_to_asn1(tbs.validity)
    asn1_tbs['subject'] = _name_to_asn1(tbs.subject)
    asn1_tbs['subjectPublicKeyInfo'] = _spki_to_asn1(tbs.subject_public_key_info)

    if tbs.issuer_unique_id is not None:
        asn1_tbs['issuerUniqueID'] = rfc5280.UniqueIdentifier.fromOctetString(
            tbs.issuer_unique_id).subtype(implicitTag=_ISSUER_UID_TAG)
    if tbs.subject_unique_id is not None:
        asn1_tbs['subjectUniqueID'] = rfc5280.UniqueIdentifier.fromOctetString(
            tbs.subject_unique_id).subtype(implicitTag=_SUBJECT_UID_TAG)

    if tbs.extensions:
        seen = set()
        extensions = rfc5280.Extensions().subtype(explicitTag=_EXTENSIONS_TAG)
        for idx, extension in enumerate(tbs.extensions):
            if extension.oid in seen:
                raise EncodingFailure(f"duplicate extension {extension.oid}")
            seen.add(extension.oid)
            extensions[idx] = _extension_to_asn1(extension)
        asn1_tbs['extensions'] = extensions

    return asn1_tbs


def _tbs_from_asn1(asn1_tbs) -> TBSCertificate:
    version = int(asn1_tbs['version']) + 1
    if version not in (1, 2, 3):
        raise MalformedEncoding(f"unknown certificate version value {version - 1}")

    extensions = []
    asn1_extensions = _optional(asn1_tbs, 'extensions')
    if asn1_extensions is not None:
        extensions = [_extension_from_asn1(item) for item in asn1_extensions]
        oids_seen = [extension.oid for extension in extensions]
        if len(set(oids_seen)) != len(oids_seen):
            raise MalformedEncoding("certificate repeats an extension")

    issuer_uid = _optional(asn1_tbs, 'issuerUniqueID')
    subject_uid = _optional(asn1_tbs, 'subjectUniqueID')

    return TBSCertificate(
        version=version,
        serial_number=int(asn1_tbs['serialNumber']),
        signature=_algorithm_from_asn1(asn1_tbs['signature']),
        issuer=_name_from_asn1(asn1_tbs['issuer']),
        validity=_validity_from_asn1(asn1_tbs['validity']),
        subject=_name_from_asn1(asn1_tbs['subject']),
        subject_public_key_info=_spki_from_asn1(asn1_tbs['subjectPublicKeyInfo']),
        issuer_unique_id=None if issuer_uid is None else _octets(issuer_uid, 'issuerUniqueID'),
        subject_unique_id=None if subject_uid is None else _octets(subject_uid, 'subjectUniqueID'),
        extensions=tuple(extensions),
    )


def _certificate_to_asn1(certificate: Certificate) -> rfc5280.Certificate:
    if certificate.signature_algorithm != certificate.tbs.signature:
        raise EncodingFailure("signatureAlgorithm differs from the TBSCertificate signature field")
    if not certificate.signature_value:
        raise EncodingFailure("certificate is not signed")
    asn1_certificate = rfc5280.Certificate()
    asn1_certificate['tbsCertificate'] = _tbs_to_asn1(certificate.tbs)
    asn1_certificate['signatureAlgorithm'] = _algorithm_to_asn1(certificate.signature_algorithm)
    asn1_certificate['signature'] = univ.BitString.fromOctetString(certificate.signature_value)
    return asn1_certificate


def _certificate_from_asn1(asn1_certificate) -> Certificate:
    tbs = _tbs_from_asn1(asn1_certificate['tbsCertificate'])
    signature_algorithm = _algorithm_from_asn1(asn1_certificate['signatureAlgorithm'])
    if signature_algorithm != tbs.signature:
        raise MalformedEncoding("signatureAlgorithm differs from the TBSCertificate signature field")
    return Certificate(
        tbs=tbs,
        signature_algorithm=signature_algorithm,
        signature_value=_octets(asn1_certificate['signature'], 'signature'),
    )


_CODECS = {
    Certificate: (rfc5280.Certificate, _certificate_to_asn1, _certificate_from_asn1),
    TBSCertificate: (rfc5280.TBSCertificate, _tbs_to_asn1, _tbs_from_asn1),
    Name: (rfc5280.Name, _name_to_asn1, _name_from_asn1),
    Validity: (rfc5280.Validity, _validity_to_asn1, _validity_from_asn1),
    AlgorithmIdentifier: (rfc5280.AlgorithmIdentifier, _algorithm_to_asn1, _algorithm_from_asn1),
    SubjectPublicKeyInfo: (rfc5280.SubjectPublicKeyInfo, _spki_to_asn1, _spki_from_asn1),
    Extension: (rfc5280.Extension, _extension_to_asn1, _extension_from_asn1),
}


def encode(value) -> bytes:
    """
    Encode a model object to canonical DER.

    Raises:
        EncodingFailure: the value is invalid for its ASN.1 type
    """
    try:
        _, to_asn1, _ = _CODECS[type(value)]
    except KeyError:
        raise EncodingFailure(f"no DER mapping for {type(value).__name__}") from None
    try:
        asn1_value = to_asn1(value)
    except asn1_error.PyAsn1Error as exc:
        raise EncodingFailure(f"invalid {type(value).__name__}: {exc}") from exc
    return encode_der(asn1_value)


def decode(data: bytes, schema: type):
    """
    Decode DER bytes into the model type given as schema.

    Raises:
        TruncatedInput, MalformedEncoding (both DecodingFailure)
    """
    try:
        asn1_schema, _, from_asn1 = _CODECS[schema]
    except KeyError:
        raise DecodingFailure(f"no DER mapping for {getattr(schema, '__name__', schema)}") from None
    asn1_value = decode_der(data, asn1_schema())
    try:
        return from_asn1(asn1_value)
    except asn1_error.PyAsn1Error as exc:
        raise MalformedEncoding(f"invalid {schema.__name__}: {exc}") from exc
    except ValidationError as exc:
        raise MalformedEncoding(f"invalid {schema.__name__}: {exc}") from exc
