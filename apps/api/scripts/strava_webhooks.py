"""
Manage the Strava push subscription for this deployment.

Strava allows one subscription per application. Typical use:

    python scripts/strava_webhooks.py list
    python scripts/strava_webhooks.py subscribe https://api.example.com/api/strava/webhook
    python scripts/strava_webhooks.py subscribe   # uses STRAVA_WEBHOOK_CALLBACK_URL
    python scripts/strava_webhooks.py delete 12345
"""

import argparse
import json
import sys

import requests

from core.config import settings
from services.strava_webhook import (
    delete_webhook_subscription,
    list_webhook_subscriptions,
    subscribe_to_webhooks,
)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("list", help="Show existing subscriptions")
    p_sub = sub.add_parser("subscribe", help="Register a callback URL")
    p_sub.add_argument("callback_url", nargs="?", default=settings.STRAVA_WEBHOOK_CALLBACK_URL)
    p_del = sub.add_parser("delete", help="Delete a subscription by id")
    p_del.add_argument("subscription_id", type=int)
    args = parser.parse_args(argv)

    try:
        if args.command == "list":
            print(json.dumps(list_webhook_subscriptions(), indent=2))
        elif args.command == "subscribe":
            if not args.callback_url:
                parser.error("callback_url is required when STRAVA_WEBHOOK_CALLBACK_URL is unset")
            print(json.dumps(subscribe_to_webhooks(args.callback_url), indent=2))
        else:
            ok = delete_webhook_subscription(args.subscription_id)
            print("deleted" if ok else "not deleted")
            return 0 if ok else 1
    except (requests.RequestException, ValueError) as e:
        print(f"Strava request failed: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
