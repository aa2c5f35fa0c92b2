from __future__ import annotations

import argparse
import logging
from collections import Counter
from pathlib import Path
from typing import Optional

from .errors import MalformedRecordError
from .logging_config import configure_logging
from .settings import CodecSettings
from .storage import read_record

logger = logging.getLogger(__name__)


def _cmd_validate(args: argparse.Namespace) -> int:
    success = True
    for p in args.paths:
        path = Path(p)
        try:
            read_record(path)
            print(f"OK: {path}")
        except MalformedRecordError as e:
            success = False
            print(f"INVALID: {path}\n{e.to_human()}\n")
        except OSError as e:
            success = False
            print(f"ERROR: {path}: {e}")
    return 0 if success else 1


def _cmd_inspect(args: argparse.Namespace) -> int:
    path = Path(args.path)
    try:
        record = read_record(path, validate=args.validate_records)
    except MalformedRecordError as e:
        print(f"INVALID: {path}\n{e.to_human()}")
        return 1
    except OSError as e:
        print(f"ERROR: {path}: {e}")
        return 1

    anchored = sum(1 for s in record.structural if s.is_anchored)
    print(f"{path}")
    print(f"  format version: {record.version}")
    print(f"  objects:        {record.object_count}")
    print(f"  structural:     {len(record.structural)} ({anchored} anchored)")
    print(f"  freestanding:   {len(record.freestanding)}")
    root = record.structural[0] if record.structural else None
    if root is not None:
        print(f"  root:           {'anchored' if root.is_anchored else record.types[root.type_id]}")
    if record.types:
        usage = Counter(e.type_id for e in [*record.structural, *record.freestanding])
        print("  types:")
        for type_id, descriptor in enumerate(record.types):
            print(f"    [{type_id}] {descriptor} x{usage.get(type_id, 0)}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="graphsnap", description="Inspect and validate snapshot records")
    p.add_argument("--settings", help="Optional settings YAML file", default=None)
    sub = p.add_subparsers(dest="cmd", required=True)

    v = sub.add_parser("validate", help="Validate snapshot files against the record schema")
    v.add_argument("paths", nargs="+", help="Snapshot JSON files")
    v.set_defaults(func=_cmd_validate)

    i = sub.add_parser("inspect", help="Print a summary of a snapshot file")
    i.add_argument("path", help="Snapshot JSON file")
    i.set_defaults(func=_cmd_inspect)

    return p


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    settings = CodecSettings.load(Path(args.settings) if args.settings else None)
    configure_logging(getattr(logging, settings.log_level.upper(), logging.INFO))
    args.validate_records = settings.validate_records
    return args.func(args)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
