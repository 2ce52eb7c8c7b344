"""Create Root CA (RSA + self-signed X.509v3) with the certforge DER builder."""
import argparse
import os

from dotenv import load_dotenv

from certforge.cert import builder, extensions
from certforge.cert.errors import CertificateError
from certforge.common.protocol import CertificateRequest, ExtensionPolicy
from certforge.crypto.sign import RSASigner
from certforge.storage.artifacts import save_certificate, save_private_key

load_dotenv()


def generate_ca(name: str, output_dir: str = "certs", key_size: int = 2048,
                validity_days: int = 3650, path_length: int = 0):
    """
    Generate a self-signed Root CA certificate and private key.

    Args:
        name: Common Name for the CA (e.g., "My CA")
        output_dir: Directory to save cert and key
        key_size: RSA key size in bits
        validity_days: Certificate validity period in days
        path_length: pathLenConstraint (0: may not issue further CAs)
    """
    request = CertificateRequest(
        common_name=name,
        policy=ExtensionPolicy.CA_ROOT,
        is_ca=True,
        path_length=path_length,
        validity_days=validity_days,
        key_size=key_size,
    )
    signer = RSASigner()

    print(f"[*] Generating {key_size}-bit RSA key pair...")
    private_key = signer.generate_keypair(request.key_size)

    print(f"[*] Creating self-signed certificate for '{name}'...")
    cert = builder.issue(request, private_key, signer=signer)

    key_der, key_pem = save_private_key(os.path.join(output_dir, "ca-key"), private_key)
    print(f"[*] Saved private key to {key_der} and {key_pem}")
    cert_der, cert_pem = save_certificate(os.path.join(output_dir, "ca-cert"), cert)
    print(f"[*] Saved certificate to {cert_der} and {cert_pem}")

    print(f"\n[+] Root CA generated successfully!")
    print(f"    Subject: {cert.subject.rfc4514_string()}")
    print(f"    Serial: {cert.tbs.serial_number:x}")
    print(f"    Valid until: {cert.tbs.validity.not_after.isoformat()}")
    for line in extensions.describe(cert):
        print(f"    {line}")
    print(f"\n[!] WARNING: Keep {key_pem} secure and do NOT commit to git!")


def main():
    parser = argparse.ArgumentParser(description="Generate Root CA certificate")
    parser.add_argument(
        "--name",
        default=os.getenv("CA_COMMON_NAME", "My CA"),
        help="Common Name for the CA (default: My CA)"
    )
    parser.add_argument(
        "--out",
        default=os.getenv("CERT_DIR", "certs"),
        help="Output directory (default: certs)"
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
        default=int(os.getenv("CA_VALIDITY_DAYS", 3650)),
        help="Validity period in days (default: 3650)"
    )
    parser.add_argument(
        "--pathlen",
        type=int,
        default=0,
        help="pathLenConstraint (default: 0)"
    )

    args = parser.parse_args()
    try:
        generate_ca(args.name, args.out, args.keysize, args.days, args.pathlen)
    except (CertificateError, ValueError) as e:
        print(f"[!] {e}")
        raise SystemExit(1)


if __name__ == "__main__":
    main()
