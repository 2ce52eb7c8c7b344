import pytest

from certforge.cert import builder
from certforge.cert.model import Name
from certforge.crypto.sign import RSASigner


@pytest.fixture(scope="session")
def signer():
    return RSASigner()


@pytest.fixture(scope="session")
def ca_key(signer):
    return signer.generate_keypair(2048)


@pytest.fixture(scope="session")
def server_key(signer):
    return signer.generate_keypair(2048)


@pytest.fixture(scope="session")
def validity():
    return builder.validity_window(365)


@pytest.fixture(scope="session")
def ca_cert(signer, ca_key, validity):
    return builder.build_ca_certificate(
        Name.from_common_name("My CA"), ca_key, validity, path_length=0, signer=signer
    )


@pytest.fixture(scope="session")
def server_cert(signer, ca_key, ca_cert, server_key, validity):
    return builder.build_server_certificate(
        Name.from_common_name("localhost"),
        signer.export_public_key(server_key),
        ca_cert,
        ca_key,
        validity,
        signer=signer,
    )
