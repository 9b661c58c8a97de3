"""Command-line utilities for ptd."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from pydantic import BaseModel

from .config_loader import load_config
from .envelope import GenericEnvelope
from .errors import PTDError
from .logging_pipeline import configure_logging
from .package import Manifest, open_package
from .settings import get_settings
from .signing import KeyPair, Signer, generate_key_pair, verify

LOGGER = logging.getLogger(__name__)


def _read_stdin() -> str | None:
    """Read JSON payload from stdin if available."""
    try:
        if sys.stdin and not sys.stdin.isatty():
            return sys.stdin.read()
    except IOError as e:
        print(f"Error reading stdin: {e}", file=sys.stderr)
    return None


def _load_json(path: str | None) -> dict[str, object]:
    """Load a JSON object from ``path`` or stdin."""
    if path:
        return _parse_json_dict(Path(path).read_text(encoding="utf-8"))
    stdin_payload = _read_stdin()
    if stdin_payload:
        return _parse_json_dict(stdin_payload)
    raise ValueError("No input provided. Use --input or pipe JSON via stdin.")


def _parse_json_dict(payload: str) -> dict[str, object]:
    """Parse a JSON string and ensure the result is a dictionary."""

    data = json.loads(payload)
    if not isinstance(data, dict):
        raise ValueError("Input JSON must be an object at the top level.")
    return {str(key): value for key, value in data.items()}


def _load_document(path: str | None, manifest: bool) -> GenericEnvelope | Manifest:
    data = _load_json(path)
    if manifest:
        return Manifest.model_validate(data)
    return GenericEnvelope.model_validate(data)


def _dump(model: BaseModel) -> str:
    return json.dumps(
        model.model_dump(mode="json", by_alias=True, exclude_none=True),
        indent=2,
        ensure_ascii=False,
    )


def _write_output(text: str, output: str | None) -> None:
    if output:
        Path(output).write_text(text + "\n", encoding="utf-8")
    else:
        print(text)


def _load_signer(args: argparse.Namespace) -> Signer:
    """Build a signer from ``--key-file`` or ``PTD_SIGNING_KEY``."""

    config = load_config(args.config)
    key_id = args.key_id or config.signing.public_key_id
    signed_by = args.signed_by or config.signing.signed_by or ""
    if not key_id:
        raise ValueError("Missing --key-id and no signing.public_key_id configured.")

    key_file = args.key_file or config.signing.key_file
    if key_file:
        data = _parse_json_dict(Path(key_file).read_text(encoding="utf-8"))
        key_pair = KeyPair(
            public_key=str(data.get("public_key", "")),
            private_key=str(data.get("private_key", "")),
        )
        return Signer.from_key_pair(key_pair, key_id, signed_by)

    private_key = get_settings().signing_key
    if not private_key:
        raise ValueError("Missing --key-file and PTD_SIGNING_KEY is not set.")
    return Signer.from_base64(private_key, key_id, signed_by)


def _cmd_keygen(args: argparse.Namespace) -> int:
    key_pair = generate_key_pair()
    _write_output(json.dumps(key_pair.to_dict(), indent=2), args.output)
    return 0


def _cmd_sign(args: argparse.Namespace) -> int:
    document = _load_document(args.input, args.manifest)
    signer = _load_signer(args)
    signer.sign(document)
    _write_output(_dump(document), args.output)
    return 0


def _cmd_verify(args: argparse.Namespace) -> int:
    document = _load_document(args.input, args.manifest)
    try:
        signature = verify(document, args.public_key)
    except PTDError as exc:
        if not args.quiet:
            print(json.dumps({"valid": False, "error": str(exc)}, separators=(",", ":")))
        return 1
    if not args.quiet:
        print(
            json.dumps(
                {
                    "valid": True,
                    "public_key_id": signature.public_key_id,
                    "signed_by": signature.signed_by,
                },
                separators=(",", ":"),
            )
        )
    return 0


def _cmd_inspect(args: argparse.Namespace) -> int:
    config = load_config(args.config)
    package = open_package(
        args.archive, require_complete=args.require_complete or None, config=config
    )
    manifest = package.manifest
    summary: dict[str, object] = {
        "version": manifest.version,
        "created": manifest.created.isoformat(),
        "creator": manifest.creator,
        "description": manifest.description,
        "files": len(manifest.files),
        "entities": {name: count.count for name, count in sorted(manifest.entities.items())},
        "signed": manifest.signature is not None,
    }
    if args.public_key:
        package.verify_signature(args.public_key)
        summary["signature_verified"] = True
    print(json.dumps(summary, indent=2))
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ptd",
        description="Sign, verify and inspect Portable Tournament Data documents and packages.",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging.")
    parser.add_argument("--json-logs", action="store_true", help="Emit logs as JSON lines.")
    commands = parser.add_subparsers(dest="command", required=True)

    keygen = commands.add_parser("keygen", help="Generate an Ed25519 key pair.")
    keygen.add_argument("--output", "-o", help="Write the key pair JSON to this file.")
    keygen.set_defaults(handler=_cmd_keygen)

    sign = commands.add_parser("sign", help="Sign an envelope or manifest JSON document.")
    sign.add_argument("--input", "-i", help="Path to the JSON document. Defaults to stdin.")
    sign.add_argument("--output", "-o", help="Write the signed document here.")
    sign.add_argument("--key-file", help="Key pair JSON produced by 'ptd keygen'.")
    sign.add_argument("--key-id", help="Public key identifier recorded in the signature.")
    sign.add_argument("--signed-by", help="Signer identity recorded in the signature.")
    sign.add_argument("--config", help="Packaging profile (YAML or JSON).")
    sign.add_argument("--manifest", action="store_true", help="Input is a package manifest.")
    sign.set_defaults(handler=_cmd_sign)

    verify_cmd = commands.add_parser("verify", help="Verify a signed envelope or manifest.")
    verify_cmd.add_argument("--input", "-i", help="Path to the JSON document. Defaults to stdin.")
    verify_cmd.add_argument("--public-key", "-k", required=True, help="Base64 public key.")
    verify_cmd.add_argument("--manifest", action="store_true", help="Input is a package manifest.")
    verify_cmd.add_argument(
        "--quiet", "-q", action="store_true", help="Suppress output, just return exit code."
    )
    verify_cmd.set_defaults(handler=_cmd_verify)

    inspect = commands.add_parser("inspect", help="Open a package archive and verify its files.")
    inspect.add_argument("archive", help="Path to the package archive.")
    inspect.add_argument("--public-key", "-k", help="Also verify the manifest signature.")
    inspect.add_argument(
        "--require-complete",
        action="store_true",
        help="Fail when the manifest lists files missing from the archive.",
    )
    inspect.add_argument("--config", help="Packaging profile (YAML or JSON).")
    inspect.set_defaults(handler=_cmd_inspect)
    return parser


def main(argv: list[str] | None = None) -> int:
    """Run the ptd command line."""
    parser = _build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as exc:  # pragma: no cover - controlled via tests
        exit_code = int(exc.code) if isinstance(exc.code, int) else 1
        return 0 if exit_code == 0 else 1

    handler = configure_logging(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        json_output=args.json_logs,
    )
    try:
        return int(args.handler(args))
    except Exception as exc:
        LOGGER.debug("Command failed", exc_info=exc)
        print(str(exc), file=sys.stderr)
        return 1
    finally:
        logging.getLogger("ptd").removeHandler(handler)


if __name__ == "__main__":
    raise SystemExit(main())
