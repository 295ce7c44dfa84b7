import json
import threading

from django.conf import settings
from django.core.management.base import BaseCommand

from notifier.client import RealTimeClient, WILDCARD


class Command(BaseCommand):
    help = "Follow a user's notification stream on a running server and print every event."

    def add_arguments(self, parser):
        parser.add_argument("user_id")
        parser.add_argument("--url", default="http://127.0.0.1:8000", help="Server base URL")
        parser.add_argument("--token", required=True, help="API token of the user (see ensure_test_users)")
        parser.add_argument("--reconnect-delay", type=float, default=settings.NOTIFIER_RECONNECT_DELAY)

    def handle(self, *args, **opts):
        client = RealTimeClient(
            opts["url"],
            token=opts["token"],
            reconnect_delay=opts["reconnect_delay"],
            stream_path=settings.NOTIFIER_STREAM_PATH,
        )

        def show(event):
            self.stdout.write(json.dumps(event, ensure_ascii=False))

        client.subscribe(WILDCARD, show)
        client.connect(opts["user_id"])
        self.stdout.write(self.style.SUCCESS(f"Listening on {client.stream_url} for user {opts['user_id']} (Ctrl+C to stop)"))
        try:
            threading.Event().wait()
        except KeyboardInterrupt:
            pass
        finally:
            client.disconnect()
