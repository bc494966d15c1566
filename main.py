"""CLI entrypoint for query configs, manual runs and the daily scheduler."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from datetime import datetime
from typing import Any, Dict, List, Optional

from config import get_settings
from core import QueryConfig, RunState, ScheduleSpec, format_schedule_time, parse_schedule_time
from orchestrator import IngestionService
from scrapers import SerpApiSearchClient
from utils.exceptions import ConfigError, ScannerError, SearchError
from utils.logger import configure_logging


def _print(payload: Any) -> None:
    print(json.dumps(payload, ensure_ascii=False, default=str, indent=2))


def _add_search_params(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--language", default="", help="hl, e.g. de")
    parser.add_argument("--region", default="", help="gl, e.g. de")
    parser.add_argument("--location", default="")
    parser.add_argument("--safe", default="off", choices=["off", "active"])
    parser.add_argument("--type", dest="result_type", default="", help="tbm: nws, isch, vid, ...")
    parser.add_argument("--time-range", default="", help="tbs, e.g. qdr:d")
    parser.add_argument("--as-qdr", default="")
    parser.add_argument("--filter", default="")
    parser.add_argument("--nfpr", default="", help="1 disables auto-corrected results")
    parser.add_argument("--max-results", type=int, default=None)


def _search_params(args: argparse.Namespace) -> Dict[str, Any]:
    return {
        "language": args.language,
        "region": args.region,
        "location": args.location,
        "safe": args.safe,
        "result_type": args.result_type,
        "time_range": args.time_range,
        "as_qdr": args.as_qdr,
        "filter": args.filter,
        "nfpr": args.nfpr,
        "max_results": args.max_results,
    }


def _config_payload(config: QueryConfig, next_fire: Optional[datetime] = None) -> Dict[str, Any]:
    payload = config.model_dump(mode="json")
    if next_fire is not None:
        payload["next_fire"] = next_fire.isoformat()
    return payload


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="DailyWebScanner CLI")
    parser.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING, ...")
    sub = parser.add_subparsers(dest="command", required=True)

    add = sub.add_parser("add-query", help="save a query config")
    add.add_argument("--query", required=True)
    add.add_argument("--at", default="", help="daily time HH:MM (omit for manual-only)")
    add.add_argument("--disabled", action="store_true")
    _add_search_params(add)

    sub.add_parser("list-queries")

    for name in ("enable", "disable"):
        toggle = sub.add_parser(name)
        toggle.add_argument("--id", required=True)

    delete_query = sub.add_parser("delete-query")
    delete_query.add_argument("--id", required=True)

    run = sub.add_parser("run", help="run a saved config now")
    run.add_argument("--id", required=True)

    search = sub.add_parser("search", help="one-shot manual search")
    search.add_argument("--query", required=True)
    _add_search_params(search)

    articles = sub.add_parser("articles", help="list articles of a config")
    articles.add_argument("--id", required=True)

    delete_article = sub.add_parser("delete-article")
    delete_article.add_argument("--id", required=True)

    retry = sub.add_parser("retry-assets", help="re-download failed assets of an article")
    retry.add_argument("--id", required=True)

    sub.add_parser("schedule", help="run the daily scheduler in the foreground")
    sub.add_parser("next-fire", help="show computed next-fire instants")
    sub.add_parser("account", help="search provider account info")
    return parser


def _articles_payload(service: IngestionService, config_id: str) -> List[Dict[str, Any]]:
    return [
        {
            "id": article.id,
            "url": article.url,
            "title": article.title,
            "word_count": article.word_count,
            "reading_time": article.reading_time,
            "quality": article.quality.value,
            "assets": article.asset_count,
            "asset_bytes": article.total_asset_bytes,
            "export_path": article.export_path,
        }
        for article in service.list_articles(config_id)
    ]


async def _dispatch(args: argparse.Namespace, service: IngestionService) -> int:
    if args.command == "add-query":
        schedule = None
        if str(args.at).strip():
            hour, minute = parse_schedule_time(args.at, strict=True)
            schedule = ScheduleSpec(scheduled_time=format_schedule_time(hour, minute), is_enabled=not args.disabled)
        config = service.add_config(QueryConfig(query=args.query, schedule=schedule, **_search_params(args)))
        _print(_config_payload(config))
        return 0

    if args.command == "list-queries":
        table = service.next_fires()
        _print([_config_payload(config, table.get(config.id)) for config in service.list_configs()])
        return 0

    if args.command in ("enable", "disable"):
        updated = service.set_enabled(args.id, args.command == "enable")
        if updated is None:
            _print({"error": f"unknown config {args.id}"})
            return 1
        _print(_config_payload(updated, service.next_fires().get(updated.id)))
        return 0

    if args.command == "delete-query":
        _print({"id": args.id, "deleted": service.delete_config(args.id)})
        return 0

    if args.command == "run":
        config = service.configs.get(args.id)
        if config is None:
            _print({"error": f"unknown config {args.id}"})
            return 1
        result = await service.run_manual(config)
        _print(result.model_dump(mode="json"))
        return 2 if result.state == RunState.ABORTED else 0

    if args.command == "search":
        result = await service.search(args.query, **_search_params(args))
        _print(result.model_dump(mode="json"))
        return 2 if result.state == RunState.ABORTED else 0

    if args.command == "articles":
        _print(_articles_payload(service, args.id))
        return 0

    if args.command == "delete-article":
        _print({"id": args.id, "deleted": service.delete_article(args.id)})
        return 0

    if args.command == "retry-assets":
        _print({"id": args.id, "recovered": await service.retry_assets(args.id)})
        return 0

    if args.command == "next-fire":
        _print({config_id: when.isoformat() for config_id, when in service.next_fires().items()})
        return 0

    if args.command == "account":
        client = service.search_client
        if not isinstance(client, SerpApiSearchClient):
            _print({"error": "account info not supported"})
            return 1
        _print(await client.account_info())
        return 0

    if args.command == "schedule":
        task = service.start()
        try:
            await task
        except asyncio.CancelledError:
            pass
        return 0

    return 1


async def _amain(args: argparse.Namespace) -> int:
    service = IngestionService()
    try:
        return await _dispatch(args, service)
    finally:
        await service.aclose()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    configure_logging(args.log_level or settings.general.log_level, log_file=settings.general.log_file)

    try:
        return asyncio.run(_amain(args))
    except KeyboardInterrupt:
        return 130
    except ConfigError as e:
        _print({"error": str(e), "value": e.value})
        return 2
    except SearchError as e:
        _print({"error": str(e), "provider": e.provider})
        return 2
    except ScannerError as e:
        _print({"error": str(e)})
        return 1


if __name__ == "__main__":
    sys.exit(main())
