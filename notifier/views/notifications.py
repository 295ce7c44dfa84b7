"""
Notification inbox endpoints.

Users list their notifications, read the unread count and mark items
read. Administrators may create a notification directly; the usual
producers are the appointment handlers, which go through
:func:`notifier.services.notifications.create_appointment_notification`.
Live delivery happens on the event stream, not here.
"""
from __future__ import annotations

import math

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import PermissionDenied
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..models import User
from ..permissions import IsAdminRole
from ..serializers.notifications import NotificationCreateSerializer, NotificationListQuerySerializer
from ..services import notifications as svc


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def notifications(request):
    if request.method == 'POST':
        return _create_notification(request)

    q = NotificationListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    page = q.validated_data.get('page') or 1
    limit = q.validated_data.get('limit') or 10
    items, total = svc.list_for_user(request.user, page=page, limit=limit, read=q.validated_data.get('read'))
    return Response({
        'ok': True,
        'data': items,
        'totalPages': math.ceil(total / limit),
        'currentPage': page,
        'totalNotifications': total,
    })


def _create_notification(request):
    if not IsAdminRole().has_permission(request, None):
        raise PermissionDenied('only administrators can create notifications')
    s = NotificationCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    n = svc.create_notification(
        title=vd['title'],
        message=vd['message'],
        type=vd['type'],
        recipient_ids=vd['recipientIds'],
        sender=request.user,
        related_entity=vd.get('relatedEntity'),
        priority=vd['priority'],
    )
    return Response({'ok': True, 'data': svc.format_notification(n)}, status=status.HTTP_201_CREATED)


@api_view(['PUT'])
@permission_classes([IsAuthenticated])
def mark_read(request, notification_id: int):
    user: User = request.user  # type: ignore[assignment]
    recipient, changed = svc.mark_as_read(notification_id, user)
    if recipient is None:
        return Response(
            {'ok': False, 'error': {'code': 'not_found', 'message': 'Notification not found or access denied'}},
            status=status.HTTP_404_NOT_FOUND,
        )
    return Response({
        'ok': True,
        'alreadyRead': not changed,
        'data': svc.format_notification(recipient.notification, recipient),
    })


@api_view(['PUT'])
@permission_classes([IsAuthenticated])
def mark_all_read(request):
    modified = svc.mark_all_as_read(request.user)
    return Response({'ok': True, 'modifiedCount': modified})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def unread_count(request):
    return Response({'ok': True, 'unreadCount': svc.unread_count(request.user)})
