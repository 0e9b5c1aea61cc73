"""
Change feed publisher.

Signal receivers on Claim and LineItem turn every committed save and delete
into a ChangeEvent on the process's realtime client. Events are sent only
after the surrounding transaction commits, so subscribers never see rows
that were rolled back.
"""

import logging
from typing import Any, Dict, Optional

from django.apps import apps as django_apps
from django.db import transaction
from django.db.models.signals import post_delete, post_save, pre_save
from django.utils import timezone

from apps.ledger.exceptions import TransportError
from apps.ledger.models import Claim, LineItem

from .events import (
    CLAIMS_TABLE,
    LINE_ITEMS_TABLE,
    ChangeEvent,
    EventType,
    claim_snapshot,
    line_item_snapshot,
)

logger = logging.getLogger(__name__)

# model -> (table, snapshot function)
TRACKED_MODELS = {
    Claim: (CLAIMS_TABLE, claim_snapshot),
    LineItem: (LINE_ITEMS_TABLE, line_item_snapshot),
}


def get_client():
    """The realtime client owned by the realtime app config."""
    return django_apps.get_app_config('realtime').client


def publish_change(event: ChangeEvent) -> None:
    """Publish an event once the current transaction commits."""
    def send():
        try:
            get_client().publish(event)
        except TransportError as exc:
            logger.warning("Could not publish %s on %s: %s", event.event_type.value, event.table, exc)

    transaction.on_commit(send)


def _timestamp(instance) -> str:
    updated_at = getattr(instance, 'updated_at', None)
    return (updated_at or timezone.now()).isoformat()


def capture_previous_row(sender, instance, **kwargs):
    """Remember the stored row so UPDATE events carry the old snapshot."""
    _, snapshot = TRACKED_MODELS[sender]
    previous: Optional[Dict[str, Any]] = None
    if not instance._state.adding:
        stored = sender.objects.filter(pk=instance.pk).first()
        if stored is not None:
            previous = snapshot(stored)
    instance._realtime_previous = previous


def publish_saved_row(sender, instance, created, **kwargs):
    table, snapshot = TRACKED_MODELS[sender]
    old = getattr(instance, '_realtime_previous', None) or {}
    publish_change(ChangeEvent(
        event_type=EventType.INSERT if created else EventType.UPDATE,
        table=table,
        new=snapshot(instance),
        old={} if created else old,
        commit_timestamp=_timestamp(instance),
    ))


def publish_deleted_row(sender, instance, **kwargs):
    table, snapshot = TRACKED_MODELS[sender]
    publish_change(ChangeEvent(
        event_type=EventType.DELETE,
        table=table,
        old=snapshot(instance),
        commit_timestamp=timezone.now().isoformat(),
    ))


def connect_signals() -> None:
    for model in TRACKED_MODELS:
        label = model._meta.label_lower
        pre_save.connect(capture_previous_row, sender=model, dispatch_uid=f'realtime_pre_save_{label}')
        post_save.connect(publish_saved_row, sender=model, dispatch_uid=f'realtime_post_save_{label}')
        post_delete.connect(publish_deleted_row, sender=model, dispatch_uid=f'realtime_post_delete_{label}')


def disconnect_signals() -> None:
    for model in TRACKED_MODELS:
        label = model._meta.label_lower
        pre_save.disconnect(sender=model, dispatch_uid=f'realtime_pre_save_{label}')
        post_save.disconnect(sender=model, dispatch_uid=f'realtime_post_save_{label}')
        post_delete.disconnect(sender=model, dispatch_uid=f'realtime_post_delete_{label}')
