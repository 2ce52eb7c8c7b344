"""Typed errors raised while encoding, decoding, building and signing certificates."""


class CertificateError(Exception):
    """Base class for every certificate construction error."""
    pass


class EncodingFailure(CertificateError):
    """A field value is invalid for its ASN.1 type (e.g. non-positive serial)."""
    pass


class DecodingFailure(CertificateError):
    """Input bytes could not be parsed into the expected structure."""
    pass


class MalformedEncoding(DecodingFailure):
    """A tag, length or nested structure does not match the expected schema."""
    pass


class TruncatedInput(DecodingFailure):
    """Fewer bytes are present than the encoding declares."""
    pass


class MissingIssuerIdentifier(CertificateError):
    """A leaf certificate was requested without the issuer's Subject Key Identifier."""
    pass


class SigningFailure(CertificateError):
    """The signing service reported a fault."""
    pass


class PolicyViolation(CertificateError):
    """Requested extensions contradict the declared extension policy."""
    pass
