"""
photoauth Command Line Interface.

Provides commands for initializing the device identity, authenticating
photos and verifying authenticated photos.
"""

import argparse
import sys
import json
import logging
from pathlib import Path

from photoauth import config
from photoauth.errors import EmbedFailed, KeyUnavailable, PhotoAuthError, SigningFailed
from photoauth.record import BACK, FRONT
from photoauth.service import PhotoAuthenticator
from photoauth.verifier import Verifier


def setup_logging(verbose: bool = False) -> None:
    """Configure logging based on verbosity."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format='%(levelname)s: %(message)s'
    )


def cmd_init(args: argparse.Namespace) -> int:
    """Create (or load) the signing key and device identifier."""
    auth = PhotoAuthenticator.from_config()
    try:
        signer = auth.key_manager.get_or_create_signing_key()
    except KeyUnavailable as e:
        print(f"Error: signing key unavailable: {e}", file=sys.stderr)
        return 1

    device_id = auth.device_identity.get_or_create_device_id()
    if not device_id.persisted:
        print("⚠️  Warning: device id could not be persisted", file=sys.stderr)

    print("🔑 DEVICE IDENTITY READY\n")
    print(f"Device ID: {device_id}")
    print("\n--- PUBLIC KEY (share with verifiers) ---")
    print(signer.public_key_pem())
    return 0


def cmd_device_id(args: argparse.Namespace) -> int:
    """Print the device identifier."""
    auth = PhotoAuthenticator.from_config()
    device_id = auth.device_identity.get_or_create_device_id()
    print(device_id)
    return 0 if device_id.persisted else 1


def cmd_export_key(args: argparse.Namespace) -> int:
    """Print the device public key."""
    auth = PhotoAuthenticator.from_config()
    try:
        signer = auth.key_manager.get_signing_key()
    except KeyUnavailable as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    if signer is None:
        print("Error: no signing key yet. Run 'photoauth init' first", file=sys.stderr)
        return 1

    print(signer.public_key_jwk() if args.jwk else signer.public_key_pem(), end="")
    if args.jwk:
        print()
    return 0


def cmd_sign(args: argparse.Namespace) -> int:
    """Authenticate an image and write the authenticated copy."""
    source = Path(args.image)
    if not source.exists():
        print(f"Error: File not found: {source}", file=sys.stderr)
        return 1

    output = Path(args.output) if args.output else source.with_name(
        f"{source.stem}_authenticated{source.suffix}"
    )

    auth = PhotoAuthenticator.from_config()
    try:
        authenticated = auth.authenticate_and_embed(
            source.read_bytes(), camera_position=args.camera, location=args.location
        )
    except SigningFailed as e:
        hint = " (retry later)" if e.retryable else ""
        print(f"Error: could not authenticate photo{hint}: {e}", file=sys.stderr)
        return 1
    except EmbedFailed as e:
        print(f"Error: failed to embed authentication: {e}", file=sys.stderr)
        return 1

    output.write_bytes(authenticated)
    print(f"✅ Photo authenticated: {output}")
    return 0


def cmd_verify(args: argparse.Namespace) -> int:
    """Verify an authenticated image."""
    image = Path(args.image)
    if not image.exists():
        print(f"Error: File not found: {image}", file=sys.stderr)
        return 1

    try:
        if args.key:
            verifier = Verifier.from_public_key(Path(args.key).read_text())
        else:
            verifier = PhotoAuthenticator.from_config().verifier
        outcome = verifier.verify(image.read_bytes())
    except (ValueError, OSError) as e:
        print(f"Error: cannot load public key: {e}", file=sys.stderr)
        return 1
    except KeyUnavailable as e:
        print(f"Error: device key unavailable: {e}", file=sys.stderr)
        return 1

    if args.json:
        result = {
            "valid": outcome.is_valid,
            "status": outcome.status.value,
            "record": outcome.record.to_dict() if outcome.record else None,
        }
        print(json.dumps(result, indent=2))
    elif outcome.is_valid:
        record = outcome.record
        print("✅ VALID")
        print(f"   Captured:  {record.timestamp_text}")
        print(f"   Device:    {record.device_id}")
        print(f"   Camera:    {record.camera_position}")
        if record.location is not None:
            print(f"   Location:  {record.location}")
    else:
        print(f"❌ {outcome.status.value.upper()}: {outcome.message}")

    return 0 if outcome.is_valid else 1


def cmd_selftest(args: argparse.Namespace) -> int:
    """Run the sign/embed/verify pipeline on a generated image."""
    try:
        outcome = PhotoAuthenticator.from_config().self_test()
    except PhotoAuthError as e:
        print(f"Authentication test failed ✗: {e}", file=sys.stderr)
        return 1

    if outcome.is_valid:
        print("Authentication system working ✓")
        return 0
    print(f"Authentication test failed ✗: {outcome.message}")
    return 1


def cmd_config(args: argparse.Namespace) -> int:
    """Print the active configuration."""
    config.print_config()
    return 0


def main() -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        prog='photoauth',
        description='photoauth CLI - cryptographic provenance for captured photos'
    )
    parser.add_argument('-v', '--verbose', action='store_true', help='Enable verbose output')

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    subparsers.add_parser('init', help='Create the device signing key and identifier')
    subparsers.add_parser('device-id', help='Print the device identifier')

    p_export = subparsers.add_parser('export-key', help='Print the device public key')
    p_export.add_argument('--jwk', action='store_true', help='Output as JWK instead of PEM')

    p_sign = subparsers.add_parser('sign', help='Authenticate a photo')
    p_sign.add_argument('image', help='JPEG or PNG file as captured')
    p_sign.add_argument('--camera', default=BACK, help=f'Camera position label ({FRONT}/{BACK})')
    p_sign.add_argument('--location', help='Optional "latitude,longitude"')
    p_sign.add_argument('-o', '--output', help='Output path (default: <name>_authenticated.<ext>)')

    p_verify = subparsers.add_parser('verify', help='Verify an authenticated photo')
    p_verify.add_argument('image', help='Image to verify')
    p_verify.add_argument('--key', help='Public key file (PEM or JWK) of the signing device')
    p_verify.add_argument('--json', action='store_true', help='Output as JSON')

    subparsers.add_parser('selftest', help='Sign and verify a generated test photo')
    subparsers.add_parser('config', help='Show configuration')

    args = parser.parse_args()

    setup_logging(args.verbose if hasattr(args, 'verbose') else False)

    commands = {
        'init': cmd_init,
        'device-id': cmd_device_id,
        'export-key': cmd_export_key,
        'sign': cmd_sign,
        'verify': cmd_verify,
        'selftest': cmd_selftest,
        'config': cmd_config,
    }
    handler = commands.get(args.command)
    if handler is None:
        parser.print_help()
        return 0
    return handler(args)


if __name__ == '__main__':
    sys.exit(main())
