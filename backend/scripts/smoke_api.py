#!/usr/bin/env python3
from __future__ import annotations

import argparse
import asyncio
import time
from typing import Any, Optional

import httpx

from livecall.services.call_api_client import CallApiClient, CallApiError, has_live_credentials
from livecall.services.call_monitor import CallMonitor


def _print_result(name: str, ok: bool, detail: Optional[str] = None, ms: Optional[float] = None) -> None:
    icon = "✓" if ok else "✗"
    suffix = f" ({ms:.1f}ms)" if ms is not None else ""
    print(f"{icon} {name}{suffix}")
    if detail:
        print(f"  {detail}")


async def _timed(coro) -> tuple[Any, float, Optional[CallApiError]]:
    start = time.perf_counter()
    try:
        result = await coro
        error = None
    except CallApiError as exc:
        result, error = None, exc
    return result, (time.perf_counter() - start) * 1000, error


async def run_smoke(base_url: str, call_type: str, phone: str, watch_seconds: float, poll_interval: float) -> None:
    async with httpx.AsyncClient(base_url=base_url.rstrip("/"), timeout=20.0) as http:
        api = CallApiClient(client=http)

        response = await http.get("/health")
        _print_result("GET /health", response.status_code == 200, f"status={response.status_code}")

        status, ms, _ = await _timed(api.livekit_status())
        _print_result(
            "GET /api/livekit-status",
            bool(status and status.get("configured")),
            f"missing={status.get('missingVars') if status else 'n/a'}",
            ms,
        )

        metadata = {"first_name": "Smoke", "last_name": "Test", "postal_code": "SW1A 1AA"}
        bundle, ms, error = await _timed(
            api.create_call(call_type, phone_number=phone if call_type == "phone" else None, metadata=metadata)
        )
        _print_result(
            "POST /api/calls",
            bool(bundle and has_live_credentials(bundle)),
            f"room={bundle.get('roomName')}" if bundle else str(error),
            ms,
        )
        if not bundle:
            return
        room_name = bundle["roomName"]

        # The record write happens after the response; give it a moment.
        await asyncio.sleep(0.5)

        detail, ms, error = await _timed(api.get_detail(room_name))
        _print_result(
            "GET /api/calls/{room}/detail",
            detail is not None,
            f"status={detail.get('status')}" if detail else str(error or "record missing"),
            ms,
        )

        page, ms, error = await _timed(api.list_calls(page=1, limit=5))
        _print_result(
            "GET /api/calls/list",
            page is not None,
            f"count={len(page['calls'])} has_more={page['pagination']['hasMore']}" if page else str(error),
            ms,
        )

        if watch_seconds > 0:
            ended = asyncio.Event()
            monitor = CallMonitor(
                api,
                room_name,
                on_ended=lambda _room: ended.set(),
                poll_interval_seconds=poll_interval,
            )
            monitor.start()
            try:
                await asyncio.wait_for(ended.wait(), timeout=watch_seconds)
            except asyncio.TimeoutError:
                await monitor.end_call(reason="watch_timeout")
            _print_result("Call monitor", monitor.ended, f"reason={monitor.end_reason}")
        else:
            teardown, ms, error = await _timed(api.end_call(room_name))
            _print_result(
                "DELETE /api/calls/{room}",
                bool(teardown and teardown.get("status") == "ended"),
                teardown.get("message") if teardown else str(error),
                ms,
            )

        updated, ms, error = await _timed(
            api.update_output(room_name, {"outcome": "completed", "collected_data": {"smoke": True}})
        )
        _print_result(
            "PATCH /api/calls/{room}/output",
            bool(updated and updated.get("success")),
            f"updated_at={updated.get('updated_at')}" if updated else str(error or "record missing"),
            ms,
        )


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="livecall backend CLI smoke test")
    parser.add_argument("--base-url", default="http://127.0.0.1:3001")
    parser.add_argument("--call-type", choices=("web", "phone"), default="web")
    parser.add_argument("--phone", default="+15550001111")
    parser.add_argument(
        "--watch",
        type=float,
        default=0.0,
        metavar="SECONDS",
        help="poll the call until the room closes instead of ending it immediately",
    )
    parser.add_argument("--poll-interval", type=float, default=5.0)
    return parser.parse_args()


async def main() -> None:
    args = parse_args()
    await run_smoke(args.base_url, args.call_type, args.phone, args.watch, args.poll_interval)


if __name__ == "__main__":
    asyncio.run(main())
