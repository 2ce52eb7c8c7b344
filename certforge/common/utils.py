"""Base64 and PEM armor helpers."""
import base64
import re

from certforge.cert.errors import DecodingFailure


PEM_LINE_LENGTH = 64
_PEM_BLOCK = re.compile(
    r"-----BEGIN ([A-Z0-9 ]+)-----\s*(.*?)\s*-----END \1-----", re.DOTALL
)


def b64e(b: bytes) -> str:
    """Base64 encode bytes -> str."""
    return base64.b64encode(b).decode()


def pem_encode(der: bytes, label: str) -> str:
    """
    Wrap DER bytes in a PEM block with 64-character base64 lines.

    Args:
        der: DER bytes
        label: Block label, e.g. "CERTIFICATE" or "PRIVATE KEY"

    Returns:
        PEM text ending with a newline
    """
    encoded = b64e(der)
    lines = [encoded[i:i + PEM_LINE_LENGTH] for i in range(0, len(encoded), PEM_LINE_LENGTH)]
    return "".join([f"-----BEGIN {label}-----\n", *(line + "\n" for line in lines), f"-----END {label}-----\n"])


def pem_decode(text: str, label: str = None) -> bytes:
    """
    Return the DER bytes of the first PEM block (optionally with a given label).

    Raises:
        DecodingFailure: no matching block or invalid base64
    """
    for match in _PEM_BLOCK.finditer(text):
        if label is None or match.group(1) == label:
            try:
                return base64.b64decode("".join(match.group(2).split()), validate=True)
            except ValueError as e:
                raise DecodingFailure(f"invalid base64 in PEM block: {e}") from e
    raise DecodingFailure(f"no PEM block{' labelled ' + label if label else ''} found")
