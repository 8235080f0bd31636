"""Command-line SHA-256.

Usage:
    python sha256_cli.py "message"            # digest of the UTF-8 message
    python sha256_cli.py -f path/to/file      # digest of the file's bytes
    python sha256_cli.py --legacy "message"   # digest as the dashboard stored it
    python sha256_cli.py --check              # run the vectors in vectors.yaml
    python sha256_cli.py --check other.yaml

The hex digest is printed to stdout. Errors go to stderr and the exit
status is 1.
"""

from __future__ import annotations

import argparse
import os
import sys
from typing import Dict, List, Optional

import yaml

from digest import Sha256, hexdigest
from legacy import legacy_hexdigest


DEFAULT_VECTORS = os.path.join(os.path.dirname(os.path.abspath(__file__)), "vectors.yaml")
CHUNK_SIZE = 64 * 1024


def hash_file(path: str) -> str:
    """Hash a file in chunks and return the hex digest."""
    hasher = Sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
            hasher.update(chunk)
    return hasher.hexdigest()


def load_vectors(path: str) -> Dict[str, List[Dict]]:
    """Read a known-answer file with ``sha256`` and ``legacy`` sections.

    Raises ValueError when the file does not have that shape: each section
    is a list of mappings with a string ``input``, a 64-hex-digit
    ``digest`` and an optional positive integer ``repeat``.
    """
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValueError(f"{path} must contain a mapping, got {type(data).__name__}")

    vectors: Dict[str, List[Dict]] = {}
    for section in ("sha256", "legacy"):
        entries = data.get(section) or []
        if not isinstance(entries, list):
            raise ValueError(f"'{section}' in {path} must be a list")

        for i, entry in enumerate(entries):
            where = f"{path}: {section}[{i}]"
            if not isinstance(entry, dict):
                raise ValueError(f"{where} must be a mapping")
            if not isinstance(entry.get("input"), str):
                raise ValueError(f"{where} needs a string 'input'")
            digest = entry.get("digest")
            if not isinstance(digest, str) or len(digest) != 64 or not all(
                c in "0123456789abcdefABCDEF" for c in digest
            ):
                raise ValueError(f"{where} needs a 64-hex-digit 'digest'")
            repeat = entry.get("repeat", 1)
            if not isinstance(repeat, int) or isinstance(repeat, bool) or repeat < 1:
                raise ValueError(f"{where} has an invalid 'repeat': {repeat!r}")
        vectors[section] = list(entries)

    return vectors


def run_checks(vectors: Dict[str, List[Dict]]) -> int:
    """Run every vector, print one line each; returns the number of failures."""
    functions = {"sha256": hexdigest, "legacy": legacy_hexdigest}
    failed = 0

    for section, fn in functions.items():
        for entry in vectors.get(section, []):
            message = entry["input"] * entry.get("repeat", 1)
            expected = entry["digest"].lower()
            actual = fn(message)

            label = repr(entry["input"])
            if len(label) > 40:
                label = label[:37] + "..."
            if entry.get("repeat", 1) != 1:
                label += f" x{entry['repeat']}"

            if actual == expected:
                print(f"[OK]   {section:<6} {label}")
            else:
                failed += 1
                print(f"[FAIL] {section:<6} {label}")
                print(f"         expected {expected}")
                print(f"         got      {actual}")

    return failed


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Compute SHA-256 digests with a from-scratch implementation"
    )
    parser.add_argument("message", nargs="?", help="Text to hash (UTF-8)")
    parser.add_argument("-f", "--file", help="Hash the raw bytes of this file instead")
    parser.add_argument(
        "--legacy",
        action="store_true",
        help="Reproduce the admin dashboard's stored digest for MESSAGE",
    )
    parser.add_argument(
        "--check",
        nargs="?",
        const=DEFAULT_VECTORS,
        metavar="VECTORS",
        help="Verify known-answer vectors (default: vectors.yaml)",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.check is not None:
        try:
            vectors = load_vectors(args.check)
        except (OSError, ValueError, yaml.YAMLError) as e:
            sys.stderr.write(f"ERROR: cannot load vectors from '{args.check}': {e}\n")
            return 1
        failed = run_checks(vectors)
        total = len(vectors["sha256"]) + len(vectors["legacy"])
        print(f"\n[SUMMARY] {total - failed} passed, {failed} failed")
        return 1 if failed else 0

    if args.file is not None:
        if args.message is not None or args.legacy:
            sys.stderr.write("ERROR: -f cannot be combined with a message or --legacy\n")
            return 1
        try:
            print(hash_file(args.file))
        except OSError as e:
            sys.stderr.write(f"ERROR: reading file '{args.file}': {e}\n")
            return 1
        return 0

    if args.message is None:
        parser.print_usage(sys.stderr)
        return 1

    if args.legacy:
        print(legacy_hexdigest(args.message))
    else:
        print(hexdigest(args.message))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
