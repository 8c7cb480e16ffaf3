#!/usr/bin/env python3
"""Operator client for the load harness host.

Example:
    python tools/fleet_ctl.py --url http://localhost:8080 add load-node.default.svc:8080
    python tools/fleet_ctl.py start --type cpu --cores 2
    python tools/fleet_ctl.py watch --interval 5

Every subcommand is one call against the host API; ``watch`` keeps polling
cluster stats until interrupted.
"""
from __future__ import annotations

import argparse
import time
from typing import Any, Dict, List, Optional

import requests


def format_stats_line(entry: Dict[str, Any]) -> str:
    node = entry.get("node_url", "?")
    if entry.get("unreachable"):
        return f"{node:<28} UNREACHABLE  {entry.get('reason') or ''}".rstrip()
    state = "RUNNING" if entry.get("running") else "idle"
    return (
        f"{node:<28} {entry.get('pod_name', 'Unknown'):<24} {state:<8} "
        f"cpu={float(entry.get('cpu_usage_percent', 0.0)):5.1f}% "
        f"mem={entry.get('used_memory_mb', 0)}/{entry.get('total_memory_mb', 0)}MB "
        f"procs={entry.get('available_processors', 0)}"
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Fleet load harness control")
    parser.add_argument("--url", default="http://localhost:8080", help="host base URL")
    parser.add_argument("--timeout", type=float, default=30.0, help="request timeout in seconds")
    sub = parser.add_subparsers(dest="command", required=True)

    add = sub.add_parser("add", help="register nodes behind a DNS name or URL")
    add.add_argument("node")
    manual = sub.add_parser("add-manual", help="register one node without DNS expansion")
    manual.add_argument("node")
    sub.add_parser("list", help="list registered nodes")
    sub.add_parser("clear", help="remove all nodes")

    start = sub.add_parser("start", help="start load on every node")
    start.add_argument("--type", default="cpu", choices=["cpu", "memory"])
    start.add_argument("--cores", type=int, default=1)
    start.add_argument("--memory-mb", type=int, default=1024)
    sub.add_parser("stop", help="stop load on every node")

    sub.add_parser("stats", help="print cluster stats once")
    watch = sub.add_parser("watch", help="poll cluster stats until Ctrl-C")
    watch.add_argument("--interval", type=float, default=5.0)
    return parser


def run(args: argparse.Namespace, session: Optional[requests.Session] = None) -> List[str]:
    """Execute one non-interactive subcommand and return the lines to print."""
    session = session or requests.Session()
    base = args.url.rstrip("/")
    timeout = args.timeout

    if args.command == "add":
        resp = session.post(f"{base}/api/nodes", data=args.node, timeout=timeout)
    elif args.command == "add-manual":
        resp = session.post(f"{base}/api/nodes/manual", data=args.node, timeout=timeout)
    elif args.command == "list":
        resp = session.get(f"{base}/api/nodes", timeout=timeout)
        resp.raise_for_status()
        return [str(node) for node in resp.json()] or ["(no nodes)"]
    elif args.command == "clear":
        resp = session.delete(f"{base}/api/nodes", timeout=timeout)
    elif args.command == "start":
        params = {"type": args.type, "cores": args.cores, "memoryMB": args.memory_mb}
        resp = session.post(f"{base}/api/control/start", params=params, timeout=timeout)
    elif args.command == "stop":
        resp = session.post(f"{base}/api/control/stop", timeout=timeout)
    elif args.command == "stats":
        resp = session.get(f"{base}/api/cluster-stats", timeout=timeout)
        resp.raise_for_status()
        return [format_stats_line(entry) for entry in resp.json()] or ["(no nodes)"]
    else:
        raise SystemExit(f"Unknown command: {args.command}")

    resp.raise_for_status()
    return [line for line in resp.text.splitlines() if line.strip()]


def main() -> None:
    args = build_parser().parse_args()
    session = requests.Session()

    if args.command != "watch":
        try:
            lines = run(args, session)
        except requests.RequestException as exc:
            raise SystemExit(f"error: {exc}")
        for line in lines:
            print(line)
        return

    args.command = "stats"
    while True:
        try:
            print(f"[{time.strftime('%H:%M:%S')}]")
            for line in run(args, session):
                print(f"  {line}")
            time.sleep(max(0.5, args.interval))
        except KeyboardInterrupt:
            print("Stopping watch")
            break
        except requests.RequestException as exc:
            print(f"[{time.strftime('%H:%M:%S')}] error: {exc}")
            time.sleep(5)


if __name__ == "__main__":
    main()
