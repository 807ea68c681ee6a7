from __future__ import annotations

import argparse
import json
import os
import sys

import requests


def _print(obj) -> None:
    print(json.dumps(obj, indent=2, ensure_ascii=False))


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="App Service Reconciler CLI")
    p.add_argument("--api", default="http://localhost:8000", help="API base URL")
    sub = p.add_subparsers(dest="cmd", required=True)

    sub.add_parser("apps", help="List MyApp objects")

    s_ev = sub.add_parser("events", help="Show events")
    s_ev.add_argument("--limit", type=int, default=20)
    s_ev.add_argument("--namespace")
    s_ev.add_argument("--name")

    s_rec = sub.add_parser("reconcile", help="Run one reconcile pass for a MyApp now")
    s_rec.add_argument("namespace")
    s_rec.add_argument("name")
    s_rec.add_argument("--user", default=os.getenv("ASR_API_USER", "admin"))
    s_rec.add_argument("--password", default=os.getenv("ASR_API_PASSWORD", "change-me"))

    args = p.parse_args(argv)

    base = args.api.rstrip("/")

    if args.cmd == "apps":
        _print(requests.get(f"{base}/apps", timeout=10).json())
        return 0

    if args.cmd == "events":
        params = {"limit": args.limit}
        if args.namespace and args.name:
            params.update(namespace=args.namespace, name=args.name)
        _print(requests.get(f"{base}/events", params=params, timeout=10).json())
        return 0

    if args.cmd == "reconcile":
        r = requests.post(
            f"{base}/apps/{args.namespace}/{args.name}/reconcile",
            auth=(args.user, args.password),
            timeout=60,
        )
        _print(r.json())
        return 0 if r.ok else 1

    return 2


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
