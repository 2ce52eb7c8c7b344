"""Generate a standalone RSA private key (PKCS#1 DER + PKCS#8 PEM)."""
import argparse
import os

from dotenv import load_dotenv

from certforge.crypto.sign import RSASigner
from certforge.storage.artifacts import save_private_key

load_dotenv()


def main():
    parser = argparse.ArgumentParser(description="Generate RSA private key")
    parser.add_argument("out", help="Output path prefix (writes <out>.der and <out>.pem)")
    parser.add_argument(
        "--keysize",
        type=int,
        default=int(os.getenv("RSA_KEY_SIZE", 2048)),
        help="RSA key size in bits (default: 2048)"
    )
    args = parser.parse_args()

    print(f"[*] Generating {args.keysize}-bit RSA key pair...")
    try:
        private_key = RSASigner().generate_keypair(args.keysize)
    except ValueError as e:
        print(f"[!] {e}")
        raise SystemExit(1)
    der_path, pem_path = save_private_key(args.out, private_key)
    print(f"[+] Private key written to {der_path} and {pem_path}")


if __name__ == "__main__":
    main()
