"""
Device agent - reports gameplay and uploads saves from the handheld.

Usage:
    tracker-agent register [--name NAME]
    tracker-agent start <game> [--platform P] [--core C]
    tracker-agent ping <game>
    tracker-agent end <game>
    tracker-agent backup <archive>

Reads TRACKER_URL, TRACKER_API_KEY and TRACKER_DEVICE_ID from the
environment. Launch scripts call start before the emulator, ping on a timer
while it runs, and end once it exits.
"""

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


class TrackerClient:
    """HTTP client for the device-facing endpoints, authenticated by API key."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        device_id: str,
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None
    ):
        self.device_id = device_id
        self._client = httpx.Client(
            base_url=base_url.rstrip("/") + API_PREFIX,
            headers={"X-API-Key": api_key},
            timeout=timeout,
            transport=transport,
        )

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def close(self) -> None:
        self._client.close()

    def _post(self, path: str, **kwargs) -> Dict[str, Any]:
        response = self._client.post(path, **kwargs)
        response.raise_for_status()
        return response.json()

    def register(self, device_name: Optional[str] = None) -> Dict[str, Any]:
        return self._post("/devices/register", json={"deviceId": self.device_id, "deviceName": device_name})

    def start(self, game_name: str, platform: Optional[str] = None, core: Optional[str] = None) -> str:
        data = self._post("/gameplay/start", json={
            "deviceId": self.device_id,
            "gameName": game_name,
            "platform": platform,
            "core": core,
        })
        logger.info(f"Started {game_name}: session {data['sessionId']}")
        return data["sessionId"]

    def ping(self, game_name: str) -> bool:
        data = self._post("/gameplay/ping", json={"deviceId": self.device_id, "gameName": game_name})
        return data["updated"]

    def end(self, game_name: str) -> int:
        data = self._post("/gameplay/end", json={"deviceId": self.device_id, "gameName": game_name})
        logger.info(f"Ended {game_name} after {data['duration']}s")
        return data["duration"]

    def upload_backup(self, archive: Path) -> str:
        with open(archive, "rb") as f:
            data = self._post(
                "/backups",
                data={"deviceId": self.device_id},
                files={"backup": (archive.name, f, "application/gzip")},
            )
        logger.info(f"Uploaded {archive.name}: backup {data['backupId']}")
        return data["backupId"]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Handheld Tracker device agent",
        prog="tracker-agent",
    )
    subparsers = parser.add_subparsers(dest="command", required=True, help="Commands")

    register_parser = subparsers.add_parser("register", help="Register this device")
    register_parser.add_argument("--name", help="Device name")

    start_parser = subparsers.add_parser("start", help="Start a gameplay session")
    start_parser.add_argument("game", help="Game name")
    start_parser.add_argument("--platform", help="Platform label, e.g. gba")
    start_parser.add_argument("--core", help="Emulation core")

    ping_parser = subparsers.add_parser("ping", help="Send a heartbeat")
    ping_parser.add_argument("game", help="Game name")

    end_parser = subparsers.add_parser("end", help="End a gameplay session")
    end_parser.add_argument("game", help="Game name")

    backup_parser = subparsers.add_parser("backup", help="Upload a save archive")
    backup_parser.add_argument("archive", type=Path, help="Path to .tar.gz archive")

    return parser


def run(args: argparse.Namespace, client: TrackerClient) -> Any:
    if args.command == "register":
        return client.register(args.name)
    if args.command == "start":
        return {"sessionId": client.start(args.game, args.platform, args.core)}
    if args.command == "ping":
        return {"updated": client.ping(args.game)}
    if args.command == "end":
        return {"duration": client.end(args.game)}
    return {"backupId": client.upload_backup(args.archive)}


def main(argv=None) -> int:
    """CLI entry point."""
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    args = build_parser().parse_args(argv)

    base_url = os.environ.get("TRACKER_URL", "http://localhost:8000")
    api_key = os.environ.get("TRACKER_API_KEY")
    device_id = os.environ.get("TRACKER_DEVICE_ID")
    if not api_key or not device_id:
        logger.error("TRACKER_API_KEY and TRACKER_DEVICE_ID must be set")
        return 2

    with TrackerClient(base_url, api_key, device_id) as client:
        try:
            result = run(args, client)
        except httpx.HTTPError as e:
            logger.error(f"Request failed: {str(e)}")
            return 1

    print(json.dumps(result))
    return 0


if __name__ == "__main__":
    sys.exit(main())
