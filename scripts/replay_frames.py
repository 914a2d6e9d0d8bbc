from __future__ import annotations

import argparse
import json
import time
from dataclasses import dataclass
from pathlib import Path
from urllib import request

from services.api_gateway.infrastructure.frame_sources import (
    encode_frame_file,
    list_frame_files,
)


@dataclass
class ReplayContext:
    """Runtime context for frame replay requests."""

    api_base: str
    session_id: str


def post_json(url: str, payload: dict | None = None) -> dict:
    data = json.dumps(payload or {}).encode("utf-8")
    req = request.Request(
        url=url,
        data=data,
        headers={"Content-Type": "application/json"},
        method="POST",
    )
    with request.urlopen(req, timeout=10) as resp:
        return json.loads(resp.read().decode("utf-8"))


def get_json(url: str) -> dict | list:
    with request.urlopen(url, timeout=10) as resp:
        return json.loads(resp.read().decode("utf-8"))


def session_url(context: ReplayContext, suffix: str = "") -> str:
    return f"{context.api_base}/v1/sessions/{context.session_id}{suffix}"


def replay_frame(context: ReplayContext, frame_id: int, frame_path: Path) -> None:
    response = post_json(
        session_url(context, "/frames"),
        {"image": encode_frame_file(frame_path)},
    )
    status = get_json(session_url(context))
    last_alert = status.get("last_alert") or {}
    print(
        f"[FRAME {frame_id}] {frame_path.name} received={response['received_frames']} "
        f"state={status['state']} severity={last_alert.get('severity')}"
    )


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Replay a folder of frames into a collision monitor session",
    )
    parser.add_argument(
        "--frames-dir",
        required=True,
        help="Path to folder with PNG/JPG frames",
    )
    parser.add_argument("--api-base", default="http://127.0.0.1:8000")
    parser.add_argument("--fps", type=float, default=1.0)
    parser.add_argument("--check-interval-sec", type=float, default=2.0)
    args = parser.parse_args()

    frames_dir = Path(args.frames_dir)
    if not frames_dir.exists():
        raise SystemExit(f"frames dir not found: {frames_dir}")

    frame_files = list_frame_files(frames_dir)
    if not frame_files:
        raise SystemExit("no frames found")

    session = post_json(
        f"{args.api_base}/v1/sessions",
        {"check_interval_sec": args.check_interval_sec},
    )
    context = ReplayContext(api_base=args.api_base, session_id=session["session_id"])
    print(f"[INFO] session_id={context.session_id}, frames={len(frame_files)}")

    dt = 1.0 / args.fps if args.fps > 0 else 1.0

    replay_frame(context=context, frame_id=0, frame_path=frame_files[0])
    post_json(session_url(context, "/enable"))
    try:
        for idx, frame_path in enumerate(frame_files[1:], start=1):
            time.sleep(dt)
            replay_frame(context=context, frame_id=idx, frame_path=frame_path)
        time.sleep(args.check_interval_sec)
    finally:
        post_json(session_url(context, "/disable"))

    alerts = get_json(session_url(context, "/alerts"))
    print(f"[DONE] session_id={context.session_id} alerts={len(alerts)}")
    for alert in alerts:
        print(f"  {alert['severity'].upper()}: {alert['alert_text']}")


if __name__ == "__main__":
    main()
