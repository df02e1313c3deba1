# signal_compiler/cli.py
from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import List, Optional

from .api import get_catalog, get_compiler, get_gateway, get_store
from .exceptions import AppError, NoCachedRunError
from .render_report_md import render_report_markdown
from .settings import get_settings


def _emit(text: str, out: Optional[str]) -> None:
    if out:
        p = Path(out)
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(text, encoding="utf-8")
        print(f"[OK] Wrote: {p}")
    else:
        sys.stdout.write(text)


def cmd_packs(args: argparse.Namespace) -> None:
    for p in get_catalog().list_packs():
        print(f"{p.id}\t{p.file_count} files\t{p.name}")


def cmd_compile(args: argparse.Namespace) -> None:
    settings = get_settings()
    compiler = get_compiler(
        settings=settings,
        catalog=get_catalog(),
        store=get_store(),
        gateway=get_gateway(),
    )
    result = asyncio.run(compiler.compile(args.pack or settings.default_pack))
    _emit(json.dumps(result.pack.to_response(), indent=2, ensure_ascii=False) + "\n", args.out)


def cmd_export(args: argparse.Namespace) -> None:
    get_catalog().get(args.pack)
    record = get_store().load_latest(args.pack)
    if record is None:
        raise NoCachedRunError(f"No run stored for pack '{args.pack}'. Compile it first.")

    if args.format == "md":
        text = render_report_markdown(record)
    else:
        text = json.dumps(record.model_dump(mode="json"), indent=2, ensure_ascii=False) + "\n"
    _emit(text, args.out)


def cmd_serve(args: argparse.Namespace) -> None:
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "signal_compiler.api:app",
        host=args.host or settings.host,
        port=args.port or settings.port,
        log_level=settings.log_level.lower(),
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="signal-compiler",
        description="Compile evidence-verified signal packs from document bundles (fail-closed).",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("packs", help="List configured packs.")
    p.set_defaults(func=cmd_packs)

    p = sub.add_parser("compile", help="Compile a pack (falls back to its last stored run).")
    p.add_argument("pack", nargs="?", default=None, help="Pack id (defaults to the configured default pack).")
    p.add_argument("--out", default=None, help="Write the signal pack JSON here instead of stdout.")
    p.set_defaults(func=cmd_compile)

    p = sub.add_parser("export", help="Export a pack's latest stored run.")
    p.add_argument("pack", help="Pack id.")
    p.add_argument("--format", choices=["json", "md"], default="json")
    p.add_argument("--out", default=None, help="Output path (defaults to stdout).")
    p.set_defaults(func=cmd_export)

    p = sub.add_parser("serve", help="Run the HTTP API.")
    p.add_argument("--host", default=None)
    p.add_argument("--port", type=int, default=None)
    p.set_defaults(func=cmd_serve)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        args.func(args)
    except AppError as e:
        print(json.dumps(e.to_dict(), ensure_ascii=False), file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
