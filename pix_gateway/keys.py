"""
Encryption key provisioning for operators.

    python -m pix_gateway.keys generate
    echo -n "$CLIENT_SECRET" | python -m pix_gateway.keys encrypt
    echo -n "$TOKEN" | python -m pix_gateway.keys decrypt

``encrypt`` / ``decrypt`` read the value from stdin (never from argv, so it
stays out of shell history) and use ``ENCRYPTION_KEY`` unless ``--key`` is
given.
"""

import argparse
import sys
from typing import Optional, TextIO

from pix_gateway.config import Settings
from pix_gateway.security.cipher import CipherError, CredentialCipher, generate_key_base64


def _cipher(key: Optional[str]) -> CredentialCipher:
    encoded = key or Settings().encryption_key
    if not encoded:
        raise CipherError("No key given: pass --key or set ENCRYPTION_KEY")
    return CredentialCipher.from_base64_key(encoded)


def main(argv: Optional[list[str]] = None, stdin: TextIO = sys.stdin, stdout: TextIO = sys.stdout) -> int:
    parser = argparse.ArgumentParser(prog="pix_gateway.keys", description="PIX gateway credential key tools")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("generate", help="Print a new base64 AES-256 key")
    for name, text in (("encrypt", "Encrypt stdin"), ("decrypt", "Decrypt a token read from stdin")):
        cmd = sub.add_parser(name, help=text)
        cmd.add_argument("--key", help="Base64 key (defaults to ENCRYPTION_KEY)")

    args = parser.parse_args(argv)

    if args.command == "generate":
        print(generate_key_base64(), file=stdout)
        return 0

    value = stdin.read().rstrip("\r\n")
    try:
        cipher = _cipher(args.key)
        result = cipher.encrypt(value) if args.command == "encrypt" else cipher.decrypt(value.strip())
    except CipherError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    print(result, file=stdout)
    return 0


if __name__ == "__main__":
    sys.exit(main())
