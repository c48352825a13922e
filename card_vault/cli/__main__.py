from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from card_vault.config.loader import DEFAULT_CONFIG_PATH, ConfigError, load_config
from card_vault.excel.reader import IngestError, write_template
from card_vault.logging.init import log_summary, setup_logging
from card_vault.models.execution_result import ExecutionResult
from card_vault.models.row_override import OverrideTable, RowOverride, parse_bool
from card_vault.services.engine import EngineError, ExecutionEngine
from card_vault.services.summary import render_summary_line
from card_vault.soap.envelope import EnvelopeVariant, variant_headers

"""CLI entrypoint for the card registration engine.

Commands:
- preview SOURCE: mapped rows, overrides and photo lookup; nothing is sent
- execute SOURCE: register / update all (or selected) rows against Vault
- execute-row SOURCE INDEX: one row, optionally with a CardNo / DownloadCard fix
- progress SOURCE: per-row status rebuilt from the execution log
- check-photos SOURCE: photo existence per row
- template OUT.xlsx: empty workbook with the header set of an action

Exit codes: 0 all rows ok, 2 completed with row errors, 1 fatal.
"""

EXIT_SUCCESS_ALL = 0
EXIT_PARTIAL_FAILURE = 2
EXIT_FATAL = 1


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env using python-dotenv.

    override=True: .env の値で既存の VAULT_* 環境変数を上書きする。
    失敗時は警告を出すのみで続行。
    """
    try:
        if path.exists():
            load_dotenv(dotenv_path=path, override=override)
    except OSError as e:  # pragma: no cover
        print(f"WARNING: failed to load .env via python-dotenv: {e}")


def _indices(text: str) -> list[int]:
    try:
        return [int(part) for part in text.split(",") if part.strip()]
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"invalid index list: {text}") from e


def _bool_arg(text: str) -> bool:
    value = parse_bool(text)
    if value is None:
        raise argparse.ArgumentTypeError(f"invalid boolean: {text}")
    return value


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="card-vault", description="Spreadsheet rows -> Vault card registration")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    p.add_argument("--config", type=Path, default=None, help=f"Config file (default: {DEFAULT_CONFIG_PATH})")
    p.add_argument("--env-file", type=Path, default=Path(".env"), help="dotenv file loaded before config")
    sub = p.add_subparsers(dest="command", required=True)

    def _source(sp: argparse.ArgumentParser) -> None:
        sp.add_argument("source", type=Path, help="Job output directory or .csv/.xlsx/.xlsm file")
        sp.add_argument("--photo-dir", type=Path, default=None, help="Photo directory (default: next to the data)")

    sp = sub.add_parser("preview", help="Show mapped rows without sending anything")
    _source(sp)
    sp.add_argument("--action", choices=["create", "update"], default="create")
    sp.add_argument("--overrides", type=Path, default=None, help="JSON list of row overrides")

    sp = sub.add_parser("execute", help="Execute all rows against Vault")
    _source(sp)
    sp.add_argument("--action", choices=["create", "update"], default="create")
    sp.add_argument("--overrides", type=Path, default=None, help="JSON list of row overrides")
    sp.add_argument("--indices", type=_indices, default=None, help="Comma separated row indices")
    sp.add_argument("--concurrency", type=int, default=None, help="Worker count")
    sp.add_argument("--json", action="store_true", help="Print the full result as JSON")

    sp = sub.add_parser("execute-row", help="Execute one row by index")
    _source(sp)
    sp.add_argument("index", type=int)
    sp.add_argument("--action", choices=["create", "update"], default="create")
    sp.add_argument("--card-no", default=None, help="Override CardNo for this row")
    sp.add_argument("--download-card", type=_bool_arg, default=None, help="Override DownloadCard (true/false)")
    sp.add_argument("--json", action="store_true", help="Print the full result as JSON")

    sp = sub.add_parser("progress", help="Show per-row progress from the execution log")
    sp.add_argument("source", type=Path)

    sp = sub.add_parser("check-photos", help="Check photo existence per row")
    _source(sp)
    sp.add_argument("--overrides", type=Path, default=None, help="JSON list of row overrides")

    sp = sub.add_parser("template", help="Write an empty spreadsheet template")
    sp.add_argument("out", type=Path)
    sp.add_argument("--action", choices=["create", "update"], default="update")
    return p.parse_args(argv)


def _read_overrides(path: Path | None) -> OverrideTable | None:
    """Read overrides JSON: a list of {"index", "cardNo"?, "downloadCard"?}."""
    if path is None:
        return None
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, list):
        raise ValueError("overrides file must contain a JSON list")
    return OverrideTable.from_dicts(data)


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2))


def _exit_code(result: ExecutionResult) -> int:
    if result.fatal:
        return EXIT_FATAL
    if result.has_errors:
        return EXIT_PARTIAL_FAILURE
    return EXIT_SUCCESS_ALL


def _report(result: ExecutionResult, as_json: bool) -> int:
    if as_json:
        _print_json(result.to_dict())
    # log_summary adds the "SUMMARY " label itself
    log_summary(render_summary_line(result)[len("SUMMARY "):])
    return _exit_code(result)


def main(argv: list[str] | None = None) -> int:
    logger = setup_logging()

    # None のときのみシステム引数を読む (テストで main([]) を渡すケース)
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    if args.debug:
        logger = setup_logging(debug=True)
        logger.debug("debug mode enabled")

    if args.command == "template":
        variant = EnvelopeVariant(args.action)
        path = write_template(args.out, variant_headers(variant))
        logger.info(f"template written: {path}")
        return EXIT_SUCCESS_ALL

    _load_env_file(args.env_file, override=True)
    try:
        cfg = load_config(args.config)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    engine = ExecutionEngine(cfg)
    try:
        if args.command == "progress":
            _print_json(engine.progress(args.source).to_dict())
            return EXIT_SUCCESS_ALL

        if args.command == "check-photos":
            rows = engine.check_photos(args.source, overrides=_read_overrides(args.overrides), photo_dir=args.photo_dir)
            _print_json(rows)
            missing = sum(1 for r in rows if not r["hasPhoto"])
            logger.info(f"photos: {len(rows) - missing}/{len(rows)} found")
            return EXIT_SUCCESS_ALL

        if args.command == "preview":
            result = engine.preview(
                args.source,
                overrides=_read_overrides(args.overrides),
                variant=EnvelopeVariant(args.action),
                photo_dir=args.photo_dir,
            )
            _print_json(result.to_dict())
            return EXIT_FATAL if result.fatal else EXIT_SUCCESS_ALL

        variant = EnvelopeVariant(args.action)
        if args.command == "execute":
            logger.info(f"Executing rows from: {args.source}")
            result = engine.execute_batch(
                args.source,
                overrides=_read_overrides(args.overrides),
                indices=args.indices,
                concurrency=args.concurrency,
                variant=variant,
                photo_dir=args.photo_dir,
                show_progress=True,
            )
            return _report(result, args.json)

        override = None
        if args.card_no is not None or args.download_card is not None:
            override = RowOverride(index=args.index, card_no=args.card_no, download_card=args.download_card)
        result = engine.execute_row(
            args.source, args.index, override=override, variant=variant, photo_dir=args.photo_dir,
        )
        return _report(result, args.json)
    except IngestError as e:
        logger.error(f"{e.code}: {e.message}")
        return EXIT_FATAL
    except EngineError as e:
        logger.error(f"engine: {e}")
        return EXIT_FATAL
    except (OSError, ValueError) as e:
        logger.error(f"input: {e}")
        return EXIT_FATAL


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
