import hashlib
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest
from cryptography import x509
from cryptography.hazmat.primitives.asymmetric import padding
from pydantic import ValidationError

from certforge.cert import builder, codec, extensions, oids
from certforge.cert.errors import (
    EncodingFailure, MissingIssuerIdentifier, PolicyViolation, SigningFailure
)
from certforge.cert.model import Name, Validity
from certforge.common.protocol import CertificateRequest, ExtensionPolicy
from certforge.crypto.sign import RSASigner


class BrokenSigner(RSASigner):
    def sign(self, keypair, digest):
        raise RuntimeError("token removed")


class OfflineSigner(RSASigner):
    def sign(self, keypair, digest):
        raise SigningFailure("hsm offline")


def test_leaf_aki_matches_ca_ski(ca_cert, server_cert):
    ca_spki = ca_cert.tbs.subject_public_key_info
    expected = hashlib.sha1(ca_spki.public_key).digest()

    assert extensions.get_subject_key_identifier(ca_cert) == expected
    assert extensions.get_authority_key_identifier(server_cert) == expected
    assert server_cert.issuer == ca_cert.subject


def test_independent_parser_accepts_chain(ca_cert, server_cert):
    ca = x509.load_der_x509_certificate(codec.encode(ca_cert))
    leaf = x509.load_der_x509_certificate(codec.encode(server_cert))

    assert ca.version == x509.Version.v3
    assert leaf.version == x509.Version.v3

    constraints = ca.extensions.get_extension_for_class(x509.BasicConstraints)
    assert constraints.critical
    assert constraints.value.ca and constraints.value.path_length == 0
    assert ca.extensions.get_extension_for_class(x509.KeyUsage).value.key_cert_sign

    usage = leaf.extensions.get_extension_for_class(x509.KeyUsage)
    assert usage.critical
    assert usage.value.digital_signature and usage.value.key_encipherment
    assert not usage.value.key_cert_sign

    ski = ca.extensions.get_extension_for_class(x509.SubjectKeyIdentifier).value
    aki = leaf.extensions.get_extension_for_class(x509.AuthorityKeyIdentifier).value
    assert aki.key_identifier == ski.digest

    ca.public_key().verify(
        leaf.signature, leaf.tbs_certificate_bytes, padding.PKCS1v15(), leaf.signature_hash_algorithm
    )
    assert leaf.tbs_certificate_bytes == codec.encode(server_cert.tbs)


def test_leaf_has_no_basic_constraints(server_cert):
    assert server_cert.get_extension(oids.BASIC_CONSTRAINTS) is None


def test_self_signed_identity(ca_cert):
    assert ca_cert.is_self_issued
    assert ca_cert.issuer == ca_cert.subject
    assert extensions.get_authority_key_identifier(ca_cert) == extensions.get_subject_key_identifier(ca_cert)


def test_signature_validity(signer, ca_key, server_key, ca_cert, server_cert):
    ca_public = signer.export_public_key(ca_key)
    assert builder.verify_certificate(ca_cert, ca_public, signer)
    assert builder.verify_certificate(server_cert, ca_public, signer)
    assert not builder.verify_certificate(server_cert, signer.export_public_key(server_key), signer)


def test_any_altered_tbs_byte_breaks_signature(signer, ca_key, server_cert):
    ca_public = signer.export_public_key(ca_key)
    tbs_der = codec.encode(server_cert.tbs)
    for position in range(0, len(tbs_der), 41):
        altered = bytearray(tbs_der)
        altered[position] ^= 0x01
        digest = hashlib.sha256(bytes(altered)).digest()
        assert not signer.verify(ca_public, digest, server_cert.signature_value)


def test_altered_field_breaks_signature(signer, ca_key, server_cert):
    tampered = server_cert.model_copy(update={
        "tbs": server_cert.tbs.model_copy(update={"serial_number": server_cert.tbs.serial_number + 1})
    })
    assert not builder.verify_certificate(tampered, signer.export_public_key(ca_key), signer)


def test_server_leaf_with_ca_flag_is_policy_violation(signer, ca_key, ca_cert, server_key, validity):
    with pytest.raises(PolicyViolation):
        builder.build_certificate(
            subject=Name.from_common_name("localhost"),
            issuer=ca_cert.subject,
            subject_public_key=signer.export_public_key(server_key),
            validity=validity,
            policy=ExtensionPolicy.SERVER_LEAF,
            signing_key=ca_key,
            is_ca=True,
            issuer_key_id=extensions.get_subject_key_identifier(ca_cert),
            signer=signer,
        )


def test_server_leaf_with_path_length_is_policy_violation(signer, ca_cert):
    spki = ca_cert.tbs.subject_public_key_info
    with pytest.raises(PolicyViolation):
        builder.build_extensions(ExtensionPolicy.SERVER_LEAF, spki, path_length=0, issuer_key_id=b"\x01" * 20)


def test_unknown_policy_is_policy_violation(ca_cert):
    spki = ca_cert.tbs.subject_public_key_info
    with pytest.raises(PolicyViolation, match="intermediate"):
        builder.build_extensions("intermediate", spki)


def test_ca_root_without_ca_flag_is_policy_violation(ca_cert):
    spki = ca_cert.tbs.subject_public_key_info
    with pytest.raises(PolicyViolation):
        builder.build_extensions(ExtensionPolicy.CA_ROOT, spki, is_ca=False)


def test_ca_root_always_has_key_cert_sign(ca_cert):
    spki = ca_cert.tbs.subject_public_key_info
    for path_length in (None, 0, 3):
        built = builder.build_extensions("ca_root", spki, path_length=path_length)
        usage = next(ext for ext in built if ext.oid == oids.KEY_USAGE)
        assert extensions.KeyUsage.KEY_CERT_SIGN in extensions.decode_key_usage(usage.value)


def test_leaf_without_issuer_identifier(signer, ca_key, ca_cert, server_key, validity):
    with pytest.raises(MissingIssuerIdentifier):
        builder.build_certificate(
            subject=Name.from_common_name("localhost"),
            issuer=ca_cert.subject,
            subject_public_key=signer.export_public_key(server_key),
            validity=validity,
            policy=ExtensionPolicy.SERVER_LEAF,
            signing_key=ca_key,
            signer=signer,
        )


def test_issuer_certificate_without_ski(signer, ca_key, ca_cert, server_key, validity):
    stripped = ca_cert.model_copy(update={
        "tbs": ca_cert.tbs.model_copy(update={
            "extensions": tuple(
                ext for ext in ca_cert.tbs.extensions if ext.oid != oids.SUBJECT_KEY_IDENTIFIER
            )
        })
    })
    with pytest.raises(MissingIssuerIdentifier):
        builder.build_server_certificate(
            Name.from_common_name("localhost"),
            signer.export_public_key(server_key),
            stripped,
            ca_key,
            validity,
            signer=signer,
        )


def test_issuer_must_be_ca(signer, server_key, server_cert, validity):
    with pytest.raises(PolicyViolation):
        builder.build_server_certificate(
            Name.from_common_name("other.local"),
            signer.export_public_key(server_key),
            server_cert,
            server_key,
            validity,
            signer=signer,
        )


def test_signing_failure_is_typed(ca_key, validity):
    with pytest.raises(SigningFailure):
        builder.build_ca_certificate(Name.from_common_name("My CA"), ca_key, validity, signer=BrokenSigner())


def test_signing_failure_from_signer_is_not_rewrapped(ca_key, validity):
    with pytest.raises(SigningFailure, match="^hsm offline$") as excinfo:
        builder.build_ca_certificate(Name.from_common_name("My CA"), ca_key, validity, signer=OfflineSigner())
    assert excinfo.value.__cause__ is None


def test_signer_rejects_wrong_digest_length(signer, ca_key):
    with pytest.raises(SigningFailure):
        signer.sign(ca_key, b"\x00" * 20)


def test_validity_bounds(signer, ca_key, validity):
    empty = Validity(not_before=validity.not_before, not_after=validity.not_before)
    with pytest.raises(EncodingFailure):
        builder.build_ca_certificate(Name.from_common_name("My CA"), ca_key, empty, signer=signer)
    backwards = Validity(not_before=validity.not_after, not_after=validity.not_before)
    with pytest.raises(EncodingFailure):
        builder.build_ca_certificate(Name.from_common_name("My CA"), ca_key, backwards, signer=signer)


def test_validity_window_truncates_to_seconds(validity):
    assert validity.not_before.microsecond == 0
    assert validity.not_after - validity.not_before == timedelta(days=365)
    assert validity.not_before.utcoffset() == timedelta(0)


def test_default_serial_is_positive(ca_cert, server_cert):
    assert 0 < ca_cert.tbs.serial_number < 2 ** 159
    assert ca_cert.tbs.serial_number != server_cert.tbs.serial_number


def test_explicit_serial_number(signer, ca_key, validity):
    cert = builder.build_ca_certificate(
        Name.from_common_name("My CA"), ca_key, validity, serial_number=1, signer=signer
    )
    assert cert.tbs.serial_number == 1
    with pytest.raises(EncodingFailure):
        builder.build_ca_certificate(
            Name.from_common_name("My CA"), ca_key, validity, serial_number=-1, signer=signer
        )


def test_issue_from_requests(signer, ca_key, server_key):
    ca_request = CertificateRequest(common_name="My CA", policy=ExtensionPolicy.CA_ROOT, path_length=0)
    ca = builder.issue(ca_request, ca_key, signer=signer)
    assert ca.subject.common_name == "My CA"

    leaf_request = CertificateRequest(common_name="localhost", policy="server_leaf", validity_days=30)
    leaf = builder.issue(leaf_request, server_key, issuer_certificate=ca, issuer_key=ca_key, signer=signer)
    assert leaf.issuer == ca.subject
    assert leaf.tbs.validity.not_after - leaf.tbs.validity.not_before == timedelta(days=30)
    assert builder.verify_certificate(leaf, signer.export_public_key(ca_key), signer)


def test_issue_leaf_rules(signer, ca_key, ca_cert, server_key):
    with pytest.raises(PolicyViolation):
        builder.issue(
            CertificateRequest(common_name="localhost", policy="server_leaf", is_ca=True),
            server_key, issuer_certificate=ca_cert, issuer_key=ca_key, signer=signer,
        )
    with pytest.raises(MissingIssuerIdentifier):
        builder.issue(CertificateRequest(common_name="localhost", policy="server_leaf"), server_key, signer=signer)


def test_request_validation():
    with pytest.raises(ValidationError):
        CertificateRequest(common_name="  ", policy=ExtensionPolicy.CA_ROOT)
    with pytest.raises(ValidationError):
        CertificateRequest(common_name="My CA", policy="intermediate")
    with pytest.raises(ValidationError):
        CertificateRequest(common_name="My CA", policy="ca_root", validity_days=0)


def test_concurrent_builds(signer, ca_key, ca_cert, server_key, validity):
    public_key = signer.export_public_key(server_key)

    def build(n):
        return builder.build_server_certificate(
            Name.from_common_name(f"host{n}.local"), public_key, ca_cert, ca_key, validity, signer=signer
        )

    with ThreadPoolExecutor(max_workers=4) as pool:
        certs = list(pool.map(build, range(8)))

    ca_public = signer.export_public_key(ca_key)
    assert all(builder.verify_certificate(cert, ca_public, signer) for cert in certs)
    assert len({cert.tbs.serial_number for cert in certs}) == 8
