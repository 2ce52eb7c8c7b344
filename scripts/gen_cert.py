"""Issue a server certificate signed by the Root CA (AKI = CA SKI)."""
import argparse
import os

from dotenv import load_dotenv

from certforge.cert import builder, codec, extensions
from certforge.cert.errors import CertificateError
from certforge.common.protocol import CertificateRequest, ExtensionPolicy
from certforge.crypto import pki
from certforge.crypto.sign import RSASigner
from certforge.storage.artifacts import load_certificate, load_key, save_certificate, save_private_key

load_dotenv()


def generate_cert(
    cn: str,
    output_prefix: str,
    ca_cert_path: str = "certs/ca-cert.pem",
    ca_key_path: str = "certs/ca-key.pem",
    key_size: int = 2048,
    validity_days: int = 365
):
    """
    Generate a certificate signed by the Root CA.

    Args:
        cn: Common Name (e.g., "localhost")
        output_prefix: Output file prefix (e.g., "certs/server")
        ca_cert_path: Path to CA certificate (.pem or .der)
        ca_key_path: Path to CA private key (.pem or .der)
        key_size: RSA key size in bits
        validity_days: Certificate validity period in days
    """
    request = CertificateRequest(
        common_name=cn,
        policy=ExtensionPolicy.SERVER_LEAF,
        validity_days=validity_days,
        key_size=key_size,
    )
    signer = RSASigner()

    print(f"[*] Loading CA certificate and key...")
    ca_cert = load_certificate(ca_cert_path)
    ca_key = load_key(ca_key_path)

    print(f"[*] Generating {key_size}-bit RSA key pair for '{cn}'...")
    private_key = signer.generate_keypair(request.key_size)

    print(f"[*] Creating certificate for '{cn}' signed by CA...")
    cert = builder.issue(request, private_key, issuer_certificate=ca_cert, issuer_key=ca_key, signer=signer)

    is_valid, error_msg = pki.validate_cert(codec.encode(cert), codec.encode(ca_cert), expected_cn=cn)
    if not is_valid:
        raise CertificateError(error_msg)

    key_der, key_pem = save_private_key(f"{output_prefix}-key", private_key)
    print(f"[*] Saved private key to {key_der} and {key_pem}")
    cert_der, cert_pem = save_certificate(f"{output_prefix}-cert", cert)
    print(f"[*] Saved certificate to {cert_der} and {cert_pem}")

    print(f"\n[+] Certificate generated successfully!")
    print(f"    CN: {cn}")
    print(f"    Issuer: {cert.issuer.rfc4514_string()}")
    print(f"    Valid for: {validity_days} days")
    for line in extensions.describe(cert):
        print(f"    {line}")
    print(f"\n[!] WARNING: Keep private key secure and do NOT commit to git!")


def main():
    cert_dir = os.getenv("CERT_DIR", "certs")
    parser = argparse.ArgumentParser(description="Generate certificate signed by Root CA")
    parser.add_argument(
        "--cn",
        default="localhost",
        help="Common Name (default: localhost)"
    )
    parser.add_argument(
        "--out",
        default=os.path.join(cert_dir, "server"),
        help="Output file prefix (default: certs/server)"
    )
    parser.add_argument(
        "--ca-cert",
        default=os.getenv("CA_CERT_PATH", os.path.join(cert_dir, "ca-cert.pem")),
        help="Path to CA certificate (default: certs/ca-cert.pem)"
    )
    parser.add_argument(
        "--ca-key",
        default=os.getenv("CA_KEY_PATH", os.path.join(cert_dir, "ca-key.pem")),
        help="Path to CA private key (default: certs/ca-key.pem)"
    )
    parser.add_argument(
        "--keysize",
        type=int,
        default=int(os.getenv("RSA_KEY_SIZE", 2048)),
        help="RSA key size in bits (default: 2048)"
    )
    parser.add_argument(
        "--days",
        type=int,
        default=int(os.getenv("CERT_VALIDITY_DAYS", 365)),
        help="Validity period in days (default: 365)"
    )

    args = parser.parse_args()
    try:
        generate_cert(
            args.cn,
            args.out,
            args.ca_cert,
            args.ca_key,
            args.keysize,
            args.days
        )
    except (CertificateError, ValueError, OSError) as e:
        print(f"[!] {e}")
        raise SystemExit(1)


if __name__ == "__main__":
    main()
