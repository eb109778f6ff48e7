from __future__ import annotations

import argparse
import json
import sys
from typing import Any, List, Optional

import uvicorn

from sentinelid.core.bootstrap import build_broker
from sentinelid.core.broker import IdentityBroker
from sentinelid.core.config import ConfigManager, ConfigPaths
from sentinelid.core.errors import SentinelError
from sentinelid.core.logger import setup_logging
from sentinelid.web.api import create_app


def _print(obj: Any) -> None:
    print(json.dumps(obj, indent=2, sort_keys=True, ensure_ascii=False))


def _dump(model: Any) -> Any:
    return model.model_dump(mode="json", by_alias=True)


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="SentinelID identity broker")
    ap.add_argument("--root", default=".", help="Directory holding config/, state/ and logs/.")
    sub = ap.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP API.")
    serve.add_argument("--host", default=None)
    serve.add_argument("--port", type=int, default=None)

    alias = sub.add_parser("alias", help="Manage aliases.")
    alias_sub = alias.add_subparsers(dest="action", required=True)
    ac = alias_sub.add_parser("create")
    ac.add_argument("--name", default="")
    ac.add_argument("--domain", default="")
    ac.add_argument("--group", default="")
    al = alias_sub.add_parser("list")
    al.add_argument("--local", default=None, help="Only aliases with this address.")
    ash = alias_sub.add_parser("show")
    ash.add_argument("alias_id")
    ad = alias_sub.add_parser("delete")
    ad.add_argument("alias_id")

    session = sub.add_parser("session", help="Manage virtual sessions.")
    session_sub = session.add_subparsers(dest="action", required=True)
    sc = session_sub.add_parser("create")
    sc.add_argument("site")
    sc.add_argument("--alias", dest="alias_id", default=None)
    session_sub.add_parser("list")
    sd = session_sub.add_parser("destroy")
    sd.add_argument("session_id")
    so = session_sub.add_parser("open")
    so.add_argument("session_id")

    pw = sub.add_parser("password", help="Generate a password.")
    pw.add_argument("--length", type=int, default=None)

    chk = sub.add_parser("check", help="Check an email against the breach service.")
    chk.add_argument("email")

    sub.add_parser("features", help="Show capability flags.")

    ev = sub.add_parser("events", help="Show recent audit events.")
    ev.add_argument("--tail", type=int, default=20)

    ex = sub.add_parser("export", help="Write a plaintext copy of the state (includes passwords).")
    ex.add_argument("path")
    return ap


def _run(broker: IdentityBroker, args: argparse.Namespace) -> None:
    if args.command == "alias":
        if args.action == "create":
            _print(_dump(broker.create_alias(args.name, args.domain, args.group)))
        elif args.action == "list":
            found = broker.find_aliases(args.local) if args.local else broker.list_aliases()
            _print([{k: v for k, v in _dump(a).items() if k != "password"} for a in found])
        elif args.action == "show":
            _print(_dump(broker.get_alias(args.alias_id)))
        elif args.action == "delete":
            detached = broker.delete_alias(args.alias_id)
            _print({"deleted": args.alias_id, "detached_sessions": [s.id for s in detached]})
    elif args.command == "session":
        if args.action == "create":
            _print(_dump(broker.create_session(args.site, args.alias_id)))
        elif args.action == "list":
            _print([_dump(s) for s in broker.list_sessions()])
        elif args.action == "destroy":
            broker.destroy_session(args.session_id)
            _print({"destroyed": args.session_id})
        elif args.action == "open":
            _print(_dump(broker.open_session(args.session_id)))
    elif args.command == "password":
        _print({"password": broker.generate_password(args.length)})
    elif args.command == "check":
        _print(_dump(broker.check_email_breach(args.email)))
    elif args.command == "features":
        _print(broker.features().to_dict())
    elif args.command == "events":
        _print(broker.event_logger.tail(args.tail) if broker.event_logger is not None else [])
    elif args.command == "export":
        broker.export(args.path)
        _print({"exported": args.path})


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    paths = ConfigPaths(args.root)
    try:
        cm = ConfigManager(paths=paths)
        cfg = cm.load()
        logger = setup_logging(paths.resolve(cfg.logging.log_dir), level=cfg.logging.level, console=args.command == "serve")
        broker = build_broker(cfg, paths=paths, logger=logger, api_key=cm.hibp_api_key()).start()
    except SentinelError as e:
        print(f"error: {e.code}: {e.user_message}", file=sys.stderr)
        return 2
    if broker.load_warning:
        print(f"warning: {broker.load_warning}", file=sys.stderr)

    try:
        if args.command == "serve":
            host = args.host or cfg.web.bind_host
            port = int(args.port or cfg.web.port)
            logger.info(f"SentinelID API on http://{host}:{port}")
            uvicorn.run(create_app(broker, logger=logger), host=host, port=port, log_level="info")
            return 0
        _run(broker, args)
        return 0
    except SentinelError as e:
        print(f"error: {e.code}: {e.user_message}", file=sys.stderr)
        return 1
    finally:
        broker.close()


if __name__ == "__main__":
    raise SystemExit(main())
