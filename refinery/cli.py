import argparse
import asyncio
import json
import logging
import os
import sys
from typing import List, Optional

from refinery.connectors import MalformedInputError, read_csv_file
from refinery.graph import RefinerySession, dataset_from_table
from refinery.utils.json_sanitize import to_jsonable
from refinery.utils.llm_gateway import GatewayError
from refinery.utils.settings import MissingCredentialError, load_settings

logger = logging.getLogger(__name__)

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

EXIT_MALFORMED_INPUT = 1
EXIT_GATEWAY_ERROR = 2
EXIT_MISSING_CREDENTIAL = 3


def _configure_logging(level_name: str) -> None:
    logging.basicConfig(level=getattr(logging, level_name.upper(), logging.INFO), format=_LOG_FORMAT)


def _print_json(obj) -> None:
    print(json.dumps(to_jsonable(obj), ensure_ascii=False, indent=2))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="refinery", description="Profile, clean and query tabular data.")
    sub = parser.add_subparsers(dest="command", required=True)

    profile = sub.add_parser("profile", help="Parse and profile a CSV file locally.")
    profile.add_argument("path", help="CSV file to profile.")

    audit = sub.add_parser("audit", help="Ask the collaborator for cleaning actions and insights.")
    audit.add_argument("path", help="CSV file to audit.")
    audit.add_argument("--rules", action="store_true", help="Also suggest validation rules.")

    clean = sub.add_parser("clean", help="Audit, apply actions, commit and write the cleaned CSV.")
    clean.add_argument("path", help="CSV file to clean.")
    clean.add_argument("--output", required=True, help="Output path for the cleaned CSV.")
    clean.add_argument(
        "--action",
        dest="actions",
        action="append",
        default=[],
        help="Apply only audit actions of this kind (repeatable). Without it a smart clean runs.",
    )

    query = sub.add_parser("query", help="Query a sample of the data.")
    query.add_argument("path", help="CSV file to query.")
    query.add_argument("text", help="Natural-language question or SQL statement.")
    query.add_argument("--sql", action="store_true", help="Treat TEXT as SQL.")
    return parser


def _profile(args) -> int:
    table = read_csv_file(args.path)
    dataset = dataset_from_table(os.path.basename(args.path), table)
    _print_json({"name": dataset.name, "rows": dataset.row_count, "columns": dataset.column_stats})
    return 0


async def _audit(session: RefinerySession, args) -> int:
    orchestrator = session.orchestrator
    await orchestrator.audit()
    payload = {"actions": orchestrator.actions, "insights": orchestrator.insights}
    if args.rules:
        payload["rules"] = await orchestrator.suggest_validation_rules()
    payload["usage"] = session.usage.snapshot()
    _print_json(payload)
    return 0


async def _clean(session: RefinerySession, args) -> int:
    orchestrator = session.orchestrator
    await orchestrator.audit()
    if args.actions:
        wanted = set(args.actions)
        for action in list(orchestrator.actions):
            if action.kind in wanted:
                await orchestrator.apply_action(action.id)
    else:
        await orchestrator.apply_all()
    dataset = orchestrator.commit()
    dataset.to_frame().to_csv(args.output, index=False)
    applied = [a.title for a in orchestrator.actions if a.status == "applied"]
    print(f"Wrote {dataset.row_count} rows to {args.output}")
    for title in applied:
        print(f"  applied: {title}")
    return 0


async def _query(session: RefinerySession, args) -> int:
    result = await session.query(args.text, "sql" if args.sql else "natural_language")
    _print_json(
        {
            "rows": result.records,
            "chart": result.chart,
            "sampled_rows": result.sampled_rows,
            "usage": session.usage.snapshot(),
        }
    )
    return 0


_SESSION_COMMANDS = {
    "audit": _audit,
    "clean": _clean,
    "query": _query,
}


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        if args.command == "profile":
            _configure_logging(os.getenv("REFINERY_LOG_LEVEL") or "INFO")
            return _profile(args)

        settings = load_settings()
        _configure_logging(settings.log_level)
        session = RefinerySession.from_settings(settings)
        if session.ingest_file(args.path) is None:
            print(f"[ERROR] {args.path} has no data rows.", file=sys.stderr)
            return EXIT_MALFORMED_INPUT
        return asyncio.run(_SESSION_COMMANDS[args.command](session, args))
    except MalformedInputError as err:
        print(f"[ERROR] {err}", file=sys.stderr)
        return EXIT_MALFORMED_INPUT
    except GatewayError as err:
        print(f"[ERROR] {err}", file=sys.stderr)
        return EXIT_GATEWAY_ERROR
    except MissingCredentialError as err:
        print(f"[ERROR] {err}", file=sys.stderr)
        return EXIT_MISSING_CREDENTIAL


if __name__ == "__main__":
    sys.exit(main())
