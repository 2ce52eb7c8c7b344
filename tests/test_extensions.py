import hashlib

import pytest

from certforge.cert import extensions, oids
from certforge.cert.errors import EncodingFailure, MalformedEncoding
from certforge.cert.extensions import KeyUsage
from certforge.cert.model import Extension


def test_ca_key_usage_payload():
    ext = extensions.key_usage(extensions.CA_KEY_USAGE)
    assert ext.oid == oids.KEY_USAGE
    assert ext.critical
    # 7 bits used (keyCertSign=5, cRLSign=6), 1 unused
    assert ext.value == bytes.fromhex("03020106")


def test_server_key_usage_payload():
    ext = extensions.key_usage(extensions.SERVER_KEY_USAGE)
    assert ext.critical
    # 3 bits used (digitalSignature=0, keyEncipherment=2), 5 unused
    assert ext.value == bytes.fromhex("030205a0")


def test_key_usage_bits_are_trimmed():
    assert KeyUsage.DIGITAL_SIGNATURE.to_bits() == "1"
    assert extensions.CA_KEY_USAGE.to_bits() == "0000011"
    assert KeyUsage.DECIPHER_ONLY.to_bits() == "000000001"
    assert extensions.key_usage(KeyUsage.DECIPHER_ONLY).value == bytes.fromhex("0303070080")


def test_key_usage_round_trip():
    usage = KeyUsage.DIGITAL_SIGNATURE | KeyUsage.KEY_AGREEMENT | KeyUsage.CRL_SIGN
    assert extensions.decode_key_usage(extensions.key_usage(usage).value) == usage


def test_empty_key_usage_rejected():
    with pytest.raises(EncodingFailure):
        extensions.key_usage(KeyUsage(0))


def test_key_usage_with_trailing_zero_bits_rejected():
    with pytest.raises(MalformedEncoding):
        extensions.decode_key_usage(bytes.fromhex("03020080"))


def test_basic_constraints_ca_with_path_length():
    ext = extensions.basic_constraints(True, 0)
    assert ext.oid == oids.BASIC_CONSTRAINTS
    assert ext.critical
    assert ext.value == bytes.fromhex("30060101ff020100")
    assert extensions.decode_basic_constraints(ext.value) == (True, 0)


def test_basic_constraints_without_path_length():
    ext = extensions.basic_constraints(True)
    assert ext.value == bytes.fromhex("30030101ff")
    assert extensions.decode_basic_constraints(ext.value) == (True, None)


def test_basic_constraints_invalid_path_length():
    with pytest.raises(EncodingFailure):
        extensions.basic_constraints(False, 0)
    with pytest.raises(EncodingFailure):
        extensions.basic_constraints(True, -1)


def test_subject_key_identifier(ca_cert):
    spki = ca_cert.tbs.subject_public_key_info
    key_id = extensions.key_identifier(spki)
    assert key_id == hashlib.sha1(spki.public_key).digest()

    ext = extensions.subject_key_identifier(key_id)
    assert not ext.critical
    assert ext.value == b"\x04\x14" + key_id
    assert extensions.decode_key_identifier(ext.value) == key_id


def test_authority_key_identifier():
    key_id = bytes(range(20))
    ext = extensions.authority_key_identifier(key_id)
    assert not ext.critical
    assert ext.value == b"\x30\x16\x80\x14" + key_id
    assert extensions.decode_authority_key_identifier(ext.value) == key_id


def test_decode_extension_dispatch(ca_cert):
    decoded = {ext.oid: extensions.decode_extension(ext) for ext in ca_cert.tbs.extensions}
    assert decoded[oids.BASIC_CONSTRAINTS] == (True, 0)
    assert decoded[oids.KEY_USAGE] == extensions.CA_KEY_USAGE

    unknown = Extension(oid="1.2.3.4", value=b"\x05\x00")
    assert extensions.decode_extension(unknown) == b"\x05\x00"


def test_describe(ca_cert):
    lines = extensions.describe(ca_cert)
    assert "basicConstraints (critical): BasicConstraints(is_ca=True, path_length=0)" in lines
    assert "keyUsage (critical): KEY_CERT_SIGN, CRL_SIGN" in lines
    assert any(line.startswith("subjectKeyIdentifier: ") for line in lines)
