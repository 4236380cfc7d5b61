import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from pixel_config import ConfigurationError, load_settings
from pixel_service import FacebookPixelService, InvalidEventError


def mask_token(token: str) -> str:
    return f"{token[:8]}..." if len(token) > 8 else "***"


def read_event(path: str) -> dict:
    if path == "-":
        data = json.load(sys.stdin)
    else:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise InvalidEventError(f"{path} does not hold a JSON object")
    return data


def main(argv: Optional[list[str]] = None, http=None) -> int:
    # python3 pixel_cli.py purchase.json --source-url https://shop.example.com/checkout --dry-run
    ap = argparse.ArgumentParser(description="Send one event to the Facebook Conversions API")
    ap.add_argument("event", help="Path to the event JSON, or - for stdin")
    ap.add_argument("--source-url", help="Page the event happened on")
    ap.add_argument("--env-file", help=".env file with the FACEBOOK_PIXEL_* settings")
    ap.add_argument("--postman-env", type=Path, help="Postman environment export with the same keys")
    ap.add_argument("--dry-run", action="store_true", help="Print the payload instead of sending it")
    ap.add_argument("-v", "--verbose", action="store_true")
    args = ap.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        settings = load_settings(args.env_file, args.postman_env)
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    service = FacebookPixelService(settings, http=http)
    try:
        event = read_event(args.event)
    except (OSError, ValueError) as e:
        print(f"Could not read event: {e}", file=sys.stderr)
        return 1

    if args.dry_run:
        try:
            payload = service.build_payload(event, args.source_url)
        except InvalidEventError as e:
            print(f"Invalid event: {e}", file=sys.stderr)
            return 1
        payload["access_token"] = mask_token(payload["access_token"])
        print(f"POST {service.endpoint}")
        print(json.dumps(payload, indent=2))
        return 0

    result = service.submit(event, args.source_url)
    if not result.ok:
        print(f"{result.error.kind.value}: {result.error.message}", file=sys.stderr)
        return 1
    print(json.dumps(result.response, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
