# surety_oracle/client.py
"""
Operator client for a running oracle node.

Reads /health and /oracles and prints the registered oracles. With
--index, shows only the oracles that would answer a request for it.

Usage:
  python -m surety_oracle.client
  python -m surety_oracle.client --url http://127.0.0.1:3000 --index 4
"""

import argparse
import sys
from typing import Optional

import httpx

DEFAULT_URL = "http://127.0.0.1:3000"


def fetch_node_state(url: str = DEFAULT_URL, client: Optional[httpx.Client] = None) -> dict:
    """Return {"health": ..., "oracles": ...} from a node."""
    own = client is None
    client = client or httpx.Client(base_url=url, timeout=10)
    try:
        health = client.get("/health")
        health.raise_for_status()
        oracles = client.get("/oracles")
        oracles.raise_for_status()
        return {"health": health.json(), "oracles": oracles.json()}
    finally:
        if own:
            client.close()


def responders(oracles: dict, index: int) -> list:
    return [o for o in oracles["oracles"] if index in o["indexes"]]


def render(state: dict, index: Optional[int] = None) -> str:
    health = state["health"]
    oracles = state["oracles"]
    lines = [
        "=" * 72,
        f"FLIGHT SURETY ORACLE NODE v{health['version']} — {health['phase']}",
        "=" * 72,
        f"  Network:    {health['network']}",
        f"  Contract:   {health['contract']}",
        f"  Oracles:    {oracles['count']}",
        f"  Listening:  {'yes' if health['listening'] else 'no'}",
    ]
    failed = oracles.get("registration", {}).get("failed", {})
    if failed:
        lines.append(f"  Failed registrations: {len(failed)}")

    rows = oracles["oracles"] if index is None else responders(oracles, index)
    lines.append("")
    if index is not None:
        lines.append(f"Oracles answering index {index}: {len(rows)}")
    for o in rows:
        idx = ",".join(str(i) for i in o["indexes"])
        lines.append(f"  {o['address']}  indexes=[{idx:8s}]  status={o['status_code']:>2} ({o['status']})")
    return "\n".join(lines)


def main(argv=None):
    parser = argparse.ArgumentParser(description="Flight Surety oracle node client")
    parser.add_argument("--url", default=DEFAULT_URL, help=f"Node base URL (default: {DEFAULT_URL})")
    parser.add_argument("--index", type=int, default=None, help="Only show oracles holding this index")
    args = parser.parse_args(argv)

    try:
        state = fetch_node_state(args.url)
    except httpx.HTTPError as e:
        print(f"✗ Node unavailable at {args.url}: {e}")
        return 1
    print(render(state, args.index))
    return 0


if __name__ == "__main__":
    sys.exit(main())
