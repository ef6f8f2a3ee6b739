#!/usr/bin/env python3
"""
qcap - command line interface for qcap-registry

Runs the registry service, computes content digests, and talks to a
running registry over HTTP.
"""

import argparse
import json
import os
import sys
from typing import Dict, List, Optional
from urllib.parse import quote

import httpx
from rich.console import Console
from rich.table import Table

from qcap_registry import __version__
from qcap_registry.modules.digest import content_digest

DEFAULT_URL = "http://localhost:8080"

console = Console()
err_console = Console(stderr=True)


class RegistryClient:
    """Thin synchronous client for the registry HTTP API."""

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        headers = {"X-API-Key": api_key} if api_key else {}
        self.client = httpx.Client(
            base_url=base_url.rstrip("/"), headers=headers, timeout=timeout, transport=transport
        )

    def close(self) -> None:
        self.client.close()

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        response = self.client.request(method, path, **kwargs)
        response.raise_for_status()
        return response

    def register(self, capability_id: str, metadata: Dict[str, str], ttl: Optional[float] = None) -> dict:
        body = {"id": capability_id, "metadata": metadata}
        if ttl is not None:
            body["ttl"] = ttl
        return self._request("POST", "/v1/capabilities", json=body).json()

    @staticmethod
    def _record_path(capability_id: str) -> str:
        return f"/v1/capabilities/{quote(capability_id, safe='')}"

    def renew(self, capability_id: str) -> dict:
        return self._request("POST", f"{self._record_path(capability_id)}/renew").json()

    def deregister(self, capability_id: str) -> None:
        self._request("DELETE", self._record_path(capability_id))

    def lookup(self, capability_id: str) -> dict:
        return self._request("GET", self._record_path(capability_id)).json()

    def list(self, metadata_filter: Optional[Dict[str, str]] = None) -> List[dict]:
        params = {f"metadata.{k}": v for k, v in (metadata_filter or {}).items()}
        return self._request("GET", "/v1/capabilities", params=params).json()["capabilities"]


def parse_metadata(pairs: Optional[List[str]]) -> Dict[str, str]:
    """Parse repeated ``key=value`` arguments."""
    metadata = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise argparse.ArgumentTypeError(f"Expected key=value, got {pair!r}")
        metadata[key] = value
    return metadata


def print_record(record: dict) -> None:
    console.print_json(json.dumps(record))


def print_records(records: List[dict]) -> None:
    table = Table(title=f"Capabilities ({len(records)} live)")
    table.add_column("ID", style="cyan")
    table.add_column("TTL", justify="right")
    table.add_column("Last Renewed")
    table.add_column("Expires")
    table.add_column("Metadata")

    for record in records:
        table.add_row(
            record["id"],
            f"{record['ttl']:g}s",
            record["lastRenewedAt"],
            record["expiresAt"],
            ", ".join(f"{k}={v}" for k, v in sorted(record["metadata"].items())),
        )
    console.print(table)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="qcap", description="Q-Cap CLI")
    parser.add_argument("--version", action="version", version=f"qcap {__version__}")
    parser.add_argument(
        "--url",
        default=os.getenv("QCAP_REGISTRY_URL", DEFAULT_URL),
        help="Registry base URL",
    )
    parser.add_argument(
        "--api-key",
        default=os.getenv("QCAP_API_KEY"),
        help="API key for mutating operations",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the registry service")
    serve.add_argument("--host", default=None, help="Bind address (default: API_HOST)")
    serve.add_argument("--port", type=int, default=None, help="Bind port (default: API_PORT)")

    hash_cmd = subparsers.add_parser("hash", help="Hash input bytes")
    hash_cmd.add_argument("input")

    register = subparsers.add_parser("register", help="Register or renew a capability")
    register.add_argument("id")
    register.add_argument("--meta", action="append", metavar="KEY=VALUE", help="Metadata pair (repeatable)")
    register.add_argument("--ttl", type=float, default=None, help="TTL in seconds")

    for name, help_text in (
        ("renew", "Renew a live capability"),
        ("deregister", "Remove a capability"),
        ("lookup", "Show a live capability"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("id")

    list_cmd = subparsers.add_parser("list", help="List live capabilities")
    list_cmd.add_argument("--meta", action="append", metavar="KEY=VALUE", help="Metadata filter (repeatable)")
    list_cmd.add_argument("--json", action="store_true", help="Print raw JSON")

    return parser


def run_client_command(args: argparse.Namespace) -> int:
    client = RegistryClient(args.url, api_key=args.api_key)
    try:
        if args.command == "register":
            print_record(client.register(args.id, parse_metadata(args.meta), args.ttl))
        elif args.command == "renew":
            print_record(client.renew(args.id))
        elif args.command == "deregister":
            client.deregister(args.id)
            console.print(f"[green]Deregistered[/green] {args.id}")
        elif args.command == "lookup":
            print_record(client.lookup(args.id))
        elif args.command == "list":
            records = client.list(parse_metadata(args.meta))
            if args.json:
                console.print_json(json.dumps(records))
            else:
                print_records(records)
        return 0
    except httpx.HTTPStatusError as e:
        try:
            detail = e.response.json()
            message = detail.get("error") or detail.get("detail") or e.response.text
        except ValueError:
            message = e.response.text
        err_console.print(f"[red]Error {e.response.status_code}:[/red] {message}")
        return 1
    except httpx.HTTPError as e:
        err_console.print(f"[red]Request failed:[/red] {e}")
        return 1
    except argparse.ArgumentTypeError as e:
        err_console.print(f"[red]{e}[/red]")
        return 2
    finally:
        client.close()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    if args.command == "hash":
        print(content_digest(args.input.encode("utf-8")))
        return 0

    if args.command == "serve":
        from qcap_registry.main import serve

        return serve(host=args.host, port=args.port)

    return run_client_command(args)


if __name__ == "__main__":
    sys.exit(main())
