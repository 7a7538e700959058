import argparse
import base64
import logging
import secrets

from cryptography.fernet import Fernet

logger = logging.getLogger(__name__)


def gen_crypto_key() -> str:
    """A value for ENCRYPTION_KEY: the base64 encoding of a Fernet key."""
    key = Fernet.generate_key()
    return base64.b64encode(key).decode("utf-8")


def gen_session_secret(length: int = 48) -> str:
    """A value for SESSION_SECRET."""
    return secrets.token_urlsafe(length)


def main() -> None:
    parser = argparse.ArgumentParser(prog="blogify-util", description="Blogify utilities")

    subparsers = parser.add_subparsers(dest="command", required=True)

    _ = subparsers.add_parser("gen-crypto", help="Generate an encryption key")
    gen_secret = subparsers.add_parser(
        "gen-secret", help="Generate a session signing secret"
    )
    gen_secret.add_argument(
        "--length", type=int, default=48, help="Number of random bytes to encode."
    )

    args = vars(parser.parse_args())
    command = args.get("command", None)

    if command == "gen-crypto":
        print(gen_crypto_key())
    elif command == "gen-secret":
        print(gen_session_secret(args.get("length", 48)))


if __name__ == "__main__":
    main()
