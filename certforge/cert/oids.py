"""Object identifiers used by the certificate builder."""

# Algorithms
RSA_ENCRYPTION = "1.2.840.113549.1.1.1"
SHA256_WITH_RSA_ENCRYPTION = "1.2.840.113549.1.1.11"

# Name attributes
COMMON_NAME = "2.5.4.3"
COUNTRY_NAME = "2.5.4.6"
LOCALITY_NAME = "2.5.4.7"
STATE_OR_PROVINCE_NAME = "2.5.4.8"
ORGANIZATION_NAME = "2.5.4.10"
ORGANIZATIONAL_UNIT_NAME = "2.5.4.11"

# Extensions
SUBJECT_KEY_IDENTIFIER = "2.5.29.14"
KEY_USAGE = "2.5.29.15"
SUBJECT_ALTERNATIVE_NAME = "2.5.29.17"
BASIC_CONSTRAINTS = "2.5.29.19"
AUTHORITY_KEY_IDENTIFIER = "2.5.29.35"
EXTENDED_KEY_USAGE = "2.5.29.37"


OID_NAMES = {
    RSA_ENCRYPTION: "rsaEncryption",
    SHA256_WITH_RSA_ENCRYPTION: "sha256WithRSAEncryption",
    COMMON_NAME: "CN",
    COUNTRY_NAME: "C",
    LOCALITY_NAME: "L",
    STATE_OR_PROVINCE_NAME: "ST",
    ORGANIZATION_NAME: "O",
    ORGANIZATIONAL_UNIT_NAME: "OU",
    SUBJECT_KEY_IDENTIFIER: "subjectKeyIdentifier",
    KEY_USAGE: "keyUsage",
    SUBJECT_ALTERNATIVE_NAME: "subjectAltName",
    BASIC_CONSTRAINTS: "basicConstraints",
    AUTHORITY_KEY_IDENTIFIER: "authorityKeyIdentifier",
    EXTENDED_KEY_USAGE: "extendedKeyUsage",
}


def name_for(oid: str) -> str:
    """Return the short name of an OID, or the dotted form if unknown."""
    return OID_NAMES.get(oid, oid)
