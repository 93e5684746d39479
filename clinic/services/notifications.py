"""
In-app notifications.

Each notification type has a message template and a set of roles allowed
to receive it.  Stored notifications are pushed to the recipient's
Channels group ``notifications.<userId>`` so connected clients update
without polling.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, Optional

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import Count, Q
from django.utils import timezone
from rest_framework.exceptions import NotFound, ValidationError

from clinic.models import Broadcast, Notification

User = get_user_model()
logger = logging.getLogger(__name__)

PRIORITY_ORDER = {'critical': 4, 'high': 3, 'medium': 2, 'low': 1}

ALL_ROLES = ['admin', 'doctor', 'nurse', 'receptionist', 'lab_technician', 'patient']
ROLE_PERMISSIONS: dict[str, list[str]] = {
    'appointment_booked': ['patient', 'doctor', 'receptionist'],
    'appointment_cancelled': ['patient', 'doctor', 'receptionist'],
    'appointment_reminder': ['patient'],
    'report_uploaded': ['patient', 'doctor'],
    'invoice_payment': ['patient', 'admin', 'receptionist'],
    'low_stock_alert': ['admin', 'nurse'],
    'medicine_expired': ['admin', 'nurse'],
    'custom_message': ALL_ROLES,
    'system_alert': ALL_ROLES,
}


def _template(type_: str, data: dict) -> tuple[str, str]:
    if type_ == 'appointment_booked':
        return ('New Appointment Booked',
                f"Appointment with {data.get('doctorName')} scheduled for {data.get('date')} at {data.get('time')}")
    if type_ == 'appointment_cancelled':
        return ('Appointment Cancelled',
                f"Your appointment with {data.get('doctorName')} on {data.get('date')} has been cancelled")
    if type_ == 'appointment_reminder':
        return 'Appointment Reminder', f"You have an appointment with {data.get('doctorName')} in 1 hour"
    if type_ == 'report_uploaded':
        return ('New Report Available',
                f"{data.get('reportType')} report has been uploaded for {data.get('patientName')}")
    if type_ == 'invoice_payment':
        return ('Payment Received',
                f"Payment of {data.get('amount')} received for invoice {data.get('invoiceNumber')}")
    if type_ == 'low_stock_alert':
        return 'Low Stock Alert', f"{data.get('medicineName')} is running low ({data.get('quantity')} remaining)"
    if type_ == 'medicine_expired':
        return 'Medicine Expired', f"{data.get('medicineName')} has expired on {data.get('expiryDate')}"
    if type_ == 'custom_message':
        return data.get('title') or 'Custom Message', data.get('message') or 'You have a new message'
    if type_ == 'system_alert':
        return 'System Alert', data.get('message') or 'System notification'
    return 'Notification', 'You have a new notification'


def get_notification_template(type_: str, data: Optional[dict] = None) -> dict:
    title, message = _template(type_, data or {})
    return {'title': title, 'message': message}


def should_send_notification(type_: str, role: str) -> bool:
    return role in ROLE_PERMISSIONS.get(type_, [])


def validate_notification_data(payload: dict) -> list[str]:
    errors = []
    if not (payload.get('title') or '').strip():
        errors.append('Title is required')
    if not (payload.get('message') or '').strip():
        errors.append('Message is required')
    if not payload.get('recipientId'):
        errors.append('Recipient is required')
    if not payload.get('type'):
        errors.append('Notification type is required')
    if not payload.get('priority'):
        errors.append('Priority is required')
    return errors


def format_notification_time(created_at: datetime, now: Optional[datetime] = None) -> str:
    now = now or timezone.now()
    minutes = int((now - created_at).total_seconds() // 60)
    if minutes < 1:
        return 'Just now'
    if minutes < 60:
        return f'{minutes}m ago'
    hours = minutes // 60
    if hours < 24:
        return f'{hours}h ago'
    days = hours // 24
    if days < 7:
        return f'{days}d ago'
    return timezone.localtime(created_at).strftime('%Y-%m-%d')


def format_notification(n: Notification) -> dict:
    return {
        'id': n.id,
        'recipientId': n.recipient_id,
        'senderId': n.sender_id,
        'type': n.type,
        'title': n.title,
        'message': n.message,
        'priority': n.priority,
        'status': n.status,
        'data': n.data,
        'createdAt': n.created_at.isoformat() if n.created_at else None,
        'readAt': n.read_at.isoformat() if n.read_at else None,
        'timeAgo': format_notification_time(n.created_at) if n.created_at else '',
    }


def sort_notifications(items: Iterable[Notification]) -> list[Notification]:
    """Unread first, then by priority (critical first), then newest first."""
    items = sorted(items, key=lambda n: n.created_at, reverse=True)
    return sorted(items, key=lambda n: (n.status != 'unread', -PRIORITY_ORDER.get(n.priority, 0)))


def _push(n: Notification) -> None:
    channel_layer = get_channel_layer()
    if channel_layer is None:
        return
    async_to_sync(channel_layer.group_send)(
        f"notifications.{n.recipient_id}",
        {"type": "notification.message", "notification": format_notification(n)},
    )


def notify(recipient, type_: str, data: Optional[dict] = None, *, title: Optional[str] = None,
           message: Optional[str] = None, priority: str = 'medium', sender=None) -> Optional[Notification]:
    """Store and push a notification; skipped when the recipient's role may not receive ``type_``."""
    if recipient is None or not should_send_notification(type_, getattr(recipient, 'role', '')):
        return None
    data = data or {}
    tpl_title, tpl_message = _template(type_, data)
    n = Notification.objects.create(
        recipient=recipient,
        sender=sender,
        type=type_,
        title=title or tpl_title,
        message=message or tpl_message,
        priority=priority,
        data=data,
    )
    _push(n)
    return n


def notify_roles(roles: Iterable[str], type_: str, data: Optional[dict] = None, **kwargs) -> list[Notification]:
    sent = []
    for user in User.objects.filter(role__in=list(roles), is_active=True):
        n = notify(user, type_, data, **kwargs)
        if n:
            sent.append(n)
    return sent


def list_notifications(user, *, status: Optional[str] = None, type_: Optional[str] = None,
                       priority: Optional[str] = None, limit: Optional[int] = None) -> list[Notification]:
    qs = Notification.objects.filter(recipient=user)
    if status:
        qs = qs.filter(status=status)
    else:
        qs = qs.exclude(status='archived')
    if type_:
        qs = qs.filter(type=type_)
    if priority:
        qs = qs.filter(priority=priority)
    items = sort_notifications(qs)
    return items[:limit] if limit else items


def _own(user, pk: int) -> Notification:
    n = Notification.objects.filter(id=pk, recipient=user).first()
    if not n:
        raise NotFound('notification not found')
    return n


def mark_as_read(user, pk: int) -> Notification:
    n = _own(user, pk)
    if n.status == 'unread':
        n.status = 'read'
        n.read_at = timezone.now()
        n.save(update_fields=['status', 'read_at'])
    return n


def mark_all_as_read(user) -> int:
    return Notification.objects.filter(recipient=user, status='unread').update(status='read', read_at=timezone.now())


def archive_notification(user, pk: int) -> Notification:
    n = _own(user, pk)
    n.status = 'archived'
    n.save(update_fields=['status'])
    return n


def clear_all(user) -> int:
    deleted, _ = Notification.objects.filter(recipient=user).delete()
    return deleted


def notification_summary(user) -> dict:
    qs = Notification.objects.filter(recipient=user).exclude(status='archived')
    by_type = {row['type']: row['n'] for row in qs.values('type').order_by().annotate(n=Count('id'))}
    counts = qs.aggregate(
        total=Count('id'),
        unread=Count('id', filter=Q(status='unread')),
        high=Count('id', filter=Q(priority__in=['high', 'critical'])),
    )
    return {
        'total': counts['total'],
        'unread': counts['unread'],
        'highPriority': counts['high'],
        'byType': by_type,
    }


def get_target_users(target_group: str, target_user_ids: Optional[list] = None):
    if target_group == 'specific':
        return User.objects.filter(id__in=target_user_ids or [], is_active=True)
    qs = User.objects.filter(is_active=True)
    if target_group == 'all':
        return qs
    return qs.filter(role=target_group)


@transaction.atomic
def send_broadcast(sender, *, title: str, message: str, target_group: str = 'all',
                   priority: str = 'medium', target_user_ids: Optional[list] = None) -> Broadcast:
    if target_group == 'specific' and not target_user_ids:
        raise ValidationError({'targetUserIds': 'at least one recipient is required'})
    recipients = list(get_target_users(target_group, target_user_ids))
    count = 0
    for user in recipients:
        if notify(user, 'custom_message', {'title': title, 'message': message},
                  priority=priority, sender=sender):
            count += 1
    broadcast = Broadcast.objects.create(
        title=title,
        message=message,
        priority=priority,
        target_group=target_group,
        target_user_ids=list(target_user_ids or []),
        recipient_count=count,
        sender=sender,
    )
    logger.info('broadcast %s sent to %d users (%s)', broadcast.broadcast_id, count, target_group)
    return broadcast


def format_broadcast(b: Broadcast) -> dict:
    return {
        'id': b.id,
        'broadcastId': b.broadcast_id,
        'title': b.title,
        'message': b.message,
        'priority': b.priority,
        'targetGroup': b.target_group,
        'targetUserIds': b.target_user_ids,
        'recipientCount': b.recipient_count,
        'senderId': b.sender_id,
        'createdAt': b.created_at.isoformat(),
    }
