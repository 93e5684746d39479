"""
In-app notifications for the current user plus administrator broadcasts.

New notifications are also pushed over the ``notifications.<userId>``
Channels group; these endpoints are the pull side.
"""
from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import NotFound, ValidationError
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from clinic.models import Broadcast, User
from clinic.permissions import IsAdminRole
from clinic.serializers.notifications import (
    BroadcastSerializer,
    NotificationListQuerySerializer,
    SendNotificationSerializer,
)
from clinic.services.notifications import (
    archive_notification,
    clear_all,
    format_broadcast,
    format_notification,
    list_notifications,
    mark_all_as_read,
    mark_as_read,
    notification_summary,
    notify,
    send_broadcast,
    should_send_notification,
)


@api_view(['GET', 'DELETE'])
@permission_classes([IsAuthenticated])
def notifications(request):
    if request.method == 'DELETE':
        removed = clear_all(request.user)
        return Response({'ok': True, 'data': {'deleted': removed}})
    q = NotificationListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = q.validated_data
    items = list_notifications(request.user, status=vd.get('status'), type_=vd.get('type'),
                               priority=vd.get('priority'), limit=vd.get('limit'))
    return Response({'ok': True, 'data': [format_notification(n) for n in items]})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def notifications_summary(request):
    return Response({'ok': True, 'data': notification_summary(request.user)})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def notifications_read_all(request):
    return Response({'ok': True, 'data': {'updated': mark_all_as_read(request.user)}})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def notification_read(request, pk: int):
    return Response({'ok': True, 'data': format_notification(mark_as_read(request.user, pk))})


@api_view(['DELETE', 'POST'])
@permission_classes([IsAuthenticated])
def notification_archive(request, pk: int):
    return Response({'ok': True, 'data': format_notification(archive_notification(request.user, pk))})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def send_notification(request):
    s = SendNotificationSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    recipient = User.objects.filter(id=vd['recipientId'], is_active=True).first()
    if not recipient:
        raise NotFound('recipient not found')
    if not should_send_notification(vd['type'], recipient.role):
        raise ValidationError({'type': f"{vd['type']} notifications are not sent to {recipient.role} users"})
    n = notify(recipient, vd['type'], vd['data'], title=vd['title'], message=vd['message'],
               priority=vd['priority'], sender=request.user)
    return Response({'ok': True, 'data': format_notification(n)}, status=status.HTTP_201_CREATED)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def broadcasts(request):
    if request.method == 'POST':
        s = BroadcastSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        b = send_broadcast(request.user, **s.validated_data)
        return Response({'ok': True, 'data': format_broadcast(b)}, status=status.HTTP_201_CREATED)
    qs = Broadcast.objects.order_by('-created_at')[:50]
    return Response({'ok': True, 'data': [format_broadcast(b) for b in qs]})
