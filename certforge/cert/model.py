"""Pydantic models: Certificate, TBSCertificate, Name, Validity, SPKI, AlgorithmIdentifier, Extension."""
import re
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, model_validator

from certforge.cert import oids


# DER encoding of ASN.1 NULL, the parameters of every RSA-family algorithm
NULL_PARAMETERS = b"\x05\x00"

# PrintableString alphabet (X.680 41.4)
PRINTABLE_CHARSET = re.compile(r"^[A-Za-z0-9 '()+,\-./:=?]*$")

StringType = Literal["printable", "utf8", "ia5", "teletex", "bmp", "universal", "visible"]


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class AttributeTypeAndValue(_Frozen):
    """
    One attribute of a relative distinguished name.

    string_type is the ASN.1 string type the value is written with. Left out,
    it is PrintableString when the value fits that alphabet, else UTF8String;
    decoding records the type found on the wire so re-encoding is exact.
    """
    oid: str  # dotted form, e.g. "2.5.4.3"
    value: str
    string_type: StringType = "utf8"

    @model_validator(mode="before")
    @classmethod
    def _default_string_type(cls, data):
        if isinstance(data, dict) and data.get("string_type") is None:
            value = data.get("value")
            if isinstance(value, str):
                chosen = "printable" if PRINTABLE_CHARSET.match(value) else "utf8"
                data = {**data, "string_type": chosen}
        return data


class Name(_Frozen):
    """Ordered RDN sequence; each RDN holds exactly one attribute."""
    rdns: tuple[AttributeTypeAndValue, ...] = ()

    @classmethod
    def from_common_name(cls, common_name: str) -> "Name":
        return cls(rdns=(AttributeTypeAndValue(oid=oids.COMMON_NAME, value=common_name),))

    @classmethod
    def from_attributes(cls, *pairs: tuple[str, str]) -> "Name":
        """Build a Name from (oid, value) pairs, keeping their order."""
        return cls(rdns=tuple(AttributeTypeAndValue(oid=oid, value=value) for oid, value in pairs))

    @property
    def common_name(self) -> Optional[str]:
        for atv in self.rdns:
            if atv.oid == oids.COMMON_NAME:
                return atv.value
        return None

    def rfc4514_string(self) -> str:
        """Render as "CN=...,O=..." with the most specific RDN first."""
        return ",".join(f"{oids.name_for(atv.oid)}={atv.value}" for atv in reversed(self.rdns))


class Validity(_Frozen):
    """Validity window; both timestamps are timezone-aware UTC."""
    not_before: datetime
    not_after: datetime


class AlgorithmIdentifier(_Frozen):
    oid: str
    parameters: Optional[bytes] = None  # raw DER of the parameters field


class SubjectPublicKeyInfo(_Frozen):
    """Public key algorithm plus the BIT STRING contents (whole octets only)."""
    algorithm: AlgorithmIdentifier
    public_key: bytes  # DER of RSAPublicKey for rsaEncryption


class Extension(_Frozen):
    oid: str
    critical: bool = False
    value: bytes  # DER of the extension-specific structure


class TBSCertificate(_Frozen):
    """The to-be-signed body; its exact DER encoding is what the signature covers."""
    version: int = 3  # 1, 2 or 3; encoded as version - 1
    serial_number: int
    signature: AlgorithmIdentifier
    issuer: Name
    validity: Validity
    subject: Name
    subject_public_key_info: SubjectPublicKeyInfo
    issuer_unique_id: Optional[bytes] = None
    subject_unique_id: Optional[bytes] = None
    extensions: tuple[Extension, ...] = ()

    def get_extension(self, oid: str) -> Optional[Extension]:
        for ext in self.extensions:
            if ext.oid == oid:
                return ext
        return None


class Certificate(_Frozen):
    """A signed certificate. Terminal, read-only artifact."""
    tbs: TBSCertificate
    signature_algorithm: AlgorithmIdentifier
    signature_value: bytes

    @property
    def subject(self) -> Name:
        return self.tbs.subject

    @property
    def issuer(self) -> Name:
        return self.tbs.issuer

    @property
    def is_self_issued(self) -> bool:
        return self.tbs.subject == self.tbs.issuer

    def get_extension(self, oid: str) -> Optional[Extension]:
        return self.tbs.get_extension(oid)
