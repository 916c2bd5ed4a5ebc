"""Django signals for cache invalidation and host e-mails.

Store writes use queryset ``update()`` and never fire ``post_save``, so the
read caches are also dropped on ``participation_changed``. The model signals
cover edits made through the admin.
"""

import logging

from django.contrib.auth import get_user_model
from django.core.mail import send_mail
from django.db.models.signals import post_delete, post_save
from django.dispatch import receiver

from participation.cache import invalidate_event
from participation.conf import get_setting
from participation.dispatch import participation_changed
from participation.domain.events import ParticipantJoined
from participation.models import Event, Participation, WaitlistEntry

logger = logging.getLogger(__name__)


@receiver([post_save, post_delete], sender=Event)
def invalidate_event_cache(sender, instance, **kwargs):
    """Invalidate caches when an event is saved or deleted."""
    invalidate_event(instance.pk)


@receiver([post_save, post_delete], sender=Participation)
def invalidate_participation_cache(sender, instance, **kwargs):
    """Invalidate the event caches when a seat is added or removed."""
    invalidate_event(instance.event_id)


@receiver([post_save, post_delete], sender=WaitlistEntry)
def invalidate_waitlist_cache(sender, instance, **kwargs):
    """Invalidate the event caches when a waitlist entry changes."""
    invalidate_event(instance.event_id)


@receiver(participation_changed)
def invalidate_on_participation_change(sender, domain_event, **kwargs):
    invalidate_event(domain_event.event.id)


@receiver(participation_changed)
def email_host_on_join(sender, domain_event, **kwargs):
    """E-mail the host when someone joins, if enabled."""
    if not isinstance(domain_event, ParticipantJoined):
        return
    if not get_setting("NOTIFY_HOST_BY_EMAIL"):
        return
    users = get_user_model().objects
    host = users.filter(pk=domain_event.event.host_id.value).first()
    if host is None or not host.email:
        return
    joiner = users.filter(pk=domain_event.user_id.value).first()
    name = (joiner.get_full_name() or joiner.get_username()) if joiner else "Someone"
    send_mail(
        subject=f"New participant in {domain_event.event.name}",
        message=f"{name} joined your event: {domain_event.event.name}",
        from_email=None,
        recipient_list=[host.email],
    )
    logger.info("Join e-mail sent to host of event %s", domain_event.event.id)
