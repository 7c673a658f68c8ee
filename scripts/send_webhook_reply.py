"""Deliver one reply to a Discord webhook as voice or text.

Usage: VOICEREPLY_WEBHOOK_URL=... python scripts/send_webhook_reply.py "reply text" ["user message"]
"""

import asyncio
import os
import sys

from voicereply import build_webhook_dispatcher


def main():
    webhook_url = os.environ.get("VOICEREPLY_WEBHOOK_URL", "")
    if len(sys.argv) < 2 or not webhook_url:
        print(__doc__.strip(), file=sys.stderr)
        sys.exit(2)

    dispatcher = build_webhook_dispatcher(webhook_url)
    user_message = sys.argv[2] if len(sys.argv) > 2 else None
    delivery = asyncio.run(dispatcher.deliver(sys.argv[1], None, user_message=user_message))

    print(f"sent as {delivery.modality}: {delivery.result}", file=sys.stderr)
    if delivery.error:
        print(f"voice failed: {delivery.error}", file=sys.stderr)
    if not (delivery.result or {}).get("ok"):
        sys.exit(1)


if __name__ == "__main__":
    main()
