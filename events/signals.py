import logging
from io import BytesIO

import qrcode
from django.conf import settings
from django.core.files import File
from django.db.models.signals import post_save
from django.dispatch import receiver

from .models import ApprovalStatus, Profile, Registration

logger = logging.getLogger(__name__)


@receiver(post_save, sender=settings.AUTH_USER_MODEL)
def on_user_created(sender, instance, created, **kwargs):
    if not created:
        return
    if instance.is_superuser:
        Profile.objects.create(user=instance, role=Profile.Role.ADMIN, approval_status=ApprovalStatus.APPROVED)
    else:
        Profile.objects.get_or_create(user=instance)


def ticket_payload(registration):
    return f"ID:{registration.id}|Event:{registration.event_id}|User:{registration.user_id}"


@receiver(post_save, sender=Registration)
def on_registration(sender, instance, created, **kwargs):
    if not created:
        return
    # Ticket QR, scanned at the door by the organizer
    qr = qrcode.make(ticket_payload(instance))
    canvas = BytesIO()
    qr.save(canvas, format='PNG')
    instance.ticket_qr.save(f'ticket_{instance.id}.png', File(canvas), save=False)
    instance.save(update_fields=['ticket_qr'])
    logger.debug("Ticket generated for registration %s", instance.id)
