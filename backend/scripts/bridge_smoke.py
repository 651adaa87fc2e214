#!/usr/bin/env python3
"""Round-trip smoke test against a running bridge.

Attaches a headless client with a no-op executor, submits one script through
`/execute` and prints the outcome envelope.

Examples:
  python3 backend/scripts/bridge_smoke.py --base-url http://127.0.0.1:8000
  python3 backend/scripts/bridge_smoke.py --pull-only --target excel
  python3 backend/scripts/bridge_smoke.py --fail "ItemNotFound"
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import pathlib
import sys

import httpx

BACKEND_DIR = pathlib.Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from docbridge.client import RemoteBridgeClient, ScriptExecutionError  # noqa: E402


SMOKE_SCRIPT = """\
const body = context.document.body;
body.load("text");
await context.sync();
return { success: true, length: body.text.length };
"""


async def _run(args: argparse.Namespace) -> int:
    def executor(task: dict) -> dict:
        if args.fail:
            raise ScriptExecutionError(f"Smoke failure requested ({args.fail})", kind=args.fail)
        return {"success": True, "echo": task.get("target")}

    client = RemoteBridgeClient(
        args.base_url,
        executor,
        client_id=args.client_id,
        token=args.token,
        max_reconnect_attempts=1 if args.pull_only else 3,
    )
    if args.pull_only:
        # Spend the single reconnect attempt up front so the session starts in polling.
        client.session.on_push_failure()
    stop = asyncio.Event()
    runner = asyncio.create_task(client.run(stop))
    await asyncio.sleep(0.5)

    headers = {"Authorization": f"Bearer {args.token}"} if args.token else {}
    try:
        async with httpx.AsyncClient(base_url=args.base_url, headers=headers, timeout=args.timeout) as http:
            resp = await http.post(
                "/api/bridge/v1/execute",
                json={"target": args.target, "script": SMOKE_SCRIPT, "description": "smoke: read body length"},
            )
            print(f"status={resp.status_code} mode={client.mode.value}")
            print(json.dumps(resp.json(), ensure_ascii=False, indent=2))
            ok = resp.status_code == 200 and (resp.json().get("success") or bool(args.fail))
    finally:
        stop.set()
        # An open push stream does not watch the stop event.
        runner.cancel()
        await asyncio.gather(runner, return_exceptions=True)
        await client.aclose()
    return 0 if ok else 1


def main() -> int:
    ap = argparse.ArgumentParser()
    ap.add_argument("--base-url", type=str, default=os.getenv("DOCBRIDGE_BASE_URL", "http://127.0.0.1:8000"))
    ap.add_argument("--token", type=str, default=os.getenv("DOCBRIDGE_SERVICE_API_TOKEN"))
    ap.add_argument("--client-id", type=str, default=None)
    ap.add_argument("--target", type=str, default="word")
    ap.add_argument("--fail", type=str, default=None, help="Report this error kind instead of succeeding.")
    ap.add_argument("--pull-only", action="store_true", help="Skip the push stream and poll from the start.")
    ap.add_argument("--timeout", type=float, default=60.0)
    args = ap.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    return asyncio.run(_run(args))


if __name__ == "__main__":
    raise SystemExit(main())
