#!/usr/bin/env python3
"""
NFT to the Future command line interface

Usage:
    nftfuture send --server <url> --unlock <when> [--message <text>]
    nftfuture token --url <ipfs url>
    nftfuture read --server <url> <cid> <token>
    nftfuture keygen
    nftfuture serve [--host <host>] [--port <port>]
"""

import argparse
import json
import os
import sys
from datetime import datetime, timezone


def parse_unlock(value: str) -> int:
    """Unix milliseconds from an integer or an ISO 8601 datetime (UTC if naive)."""
    if value.isdigit():
        return int(value)
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a timestamp or ISO datetime: {value!r}")
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


def _client(args):
    from .client import TimeCapsuleClient
    from .config import Settings
    from .keys import generate_private_key, get_signer
    from .network import build_network

    settings = Settings.from_env()
    key = args.key or os.getenv("SENDER_KEY")
    if not key:
        key = generate_private_key()
        print("No SENDER_KEY set, using a throwaway wallet", file=sys.stderr)
    signer = get_signer(key)
    network = build_network(settings, signer)
    return TimeCapsuleClient(args.server, network, signer, chain=settings.chain,
                             timeout=settings.http_timeout, session_ttl_seconds=settings.session_ttl_seconds)


def cmd_send(args):
    """Seal a message and request its capsule."""
    from .client import RequestFailed

    message = args.message if args.message is not None else sys.stdin.read()
    if not message.strip():
        print("Message is empty", file=sys.stderr)
        return 2

    try:
        result = _client(args).send(message, args.unlock)
    except RequestFailed as exc:
        print(f"✗ Request failed: {exc}", file=sys.stderr)
        return 1

    print(json.dumps(result, indent=2))
    if result.get("external_url"):
        print(f"\n✓ Readable after unlock at: {result['external_url']}", file=sys.stderr)
    else:
        print("\n✓ Sealed, but the documents were not pinned", file=sys.stderr)
    return 0


def cmd_token(args):
    """Compute the protected read link for a pinned document."""
    from .config import Settings
    from .obfuscation import protected_url

    settings = Settings.from_env()
    try:
        print(protected_url(args.url, args.base_url or settings.public_base_url, settings.url_salt))
    except ValueError as exc:
        print(f"✗ {exc}", file=sys.stderr)
        return 1
    return 0


def cmd_read(args):
    """Fetch a message through the service."""
    from .client import RequestFailed

    try:
        doc = _client(args).read(args.cid, args.token)
    except RequestFailed as exc:
        print(f"✗ {exc}", file=sys.stderr)
        return 1

    print(json.dumps(doc, indent=2))
    if "publicMessage" not in doc:
        print("\nStill locked", file=sys.stderr)
    return 0


def cmd_keygen(args):
    """Generate a wallet key for API_KEY or SENDER_KEY."""
    from .keys import generate_private_key, get_signer

    key = generate_private_key()
    print(json.dumps({"private_key": key, "address": get_signer(key).address}, indent=2))
    return 0


def cmd_serve(args):
    """Run the HTTP service."""
    import uvicorn

    uvicorn.run("nftfuture.main:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def main():
    parser = argparse.ArgumentParser(
        description="NFT to the Future CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  nftfuture keygen
  nftfuture serve --port 8000
  nftfuture send -s http://localhost:8000 -u 2030-01-01T00:00:00Z -m "Hello future"
  nftfuture token --url https://ipfs.io/ipfs/<cid>
  nftfuture read -s http://localhost:8000 <cid> <token>
        """
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # send
    send_parser = subparsers.add_parser("send", help="Send a message to the future")
    send_parser.add_argument("-s", "--server", required=True, help="Service base URL")
    send_parser.add_argument("-u", "--unlock", required=True, type=parse_unlock,
                             help="Unlock time (unix ms or ISO 8601)")
    send_parser.add_argument("-m", "--message", help="Message text (default: stdin)")
    send_parser.add_argument("-k", "--key", help="Sender private key (default: $SENDER_KEY)")

    # token
    token_parser = subparsers.add_parser("token", help="Compute a protected read link")
    token_parser.add_argument("--url", required=True, help="Gateway URL of the message document")
    token_parser.add_argument("--base-url", help="Public base URL (default: $PUBLIC_BASE_URL)")

    # read
    read_parser = subparsers.add_parser("read", help="Read a message")
    read_parser.add_argument("-s", "--server", required=True, help="Service base URL")
    read_parser.add_argument("-k", "--key", help="Reader private key (default: $SENDER_KEY)")
    read_parser.add_argument("cid")
    read_parser.add_argument("token")

    # keygen
    subparsers.add_parser("keygen", help="Generate a wallet key")

    # serve
    serve_parser = subparsers.add_parser("serve", help="Run the HTTP service")
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=8000)
    serve_parser.add_argument("--reload", action="store_true")

    args = parser.parse_args()

    commands = {
        "send": cmd_send,
        "token": cmd_token,
        "read": cmd_read,
        "keygen": cmd_keygen,
        "serve": cmd_serve,
    }
    if args.command not in commands:
        parser.print_help()
        return
    sys.exit(commands[args.command](args))


if __name__ == "__main__":
    main()
