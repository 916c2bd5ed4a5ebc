"""Expire overdue waitlist offers and pass their seats on.

Meant to run periodically (cron, a scheduler). Safe to run concurrently.
"""

import logging

from django.core.management.base import BaseCommand

from participation.services import build_participation_service

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "Expire overdue waitlist offers and offer the freed seats to the next users."

    def handle(self, *args, **options):
        events = build_participation_service().expire_waitlist_offers()
        for event in events:
            self.stdout.write(f"{event.name} ({event.id}): {event.free_seats} free, {event.held_seats} held")
        logger.info("Waitlist sweep touched %d event(s)", len(events))
        self.stdout.write(self.style.SUCCESS(f"Processed {len(events)} event(s)."))
