from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from booking.exceptions import NotFoundError
from booking.models import Notification


def _to_dict(n: Notification) -> dict:
    return {
        'id': n.id,
        'message': n.message,
        'type': n.notification_type,
        'isRead': n.is_read,
        'createdAt': n.created_at.isoformat() if n.created_at else None,
    }


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def notifications(request):
    """Current user's notifications, newest first.  ``unread=1`` filters."""
    qs = Notification.objects.filter(user=request.user)
    if (request.query_params.get('unread') or '0') in ['1', 'true', 'True']:
        qs = qs.filter(is_read=False)
    data = [_to_dict(n) for n in qs.order_by('-created_at', '-id')]
    return Response({'ok': True, 'data': data, 'unreadCount': qs.filter(is_read=False).count()})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def notification_read(request, pk: int):
    n = Notification.objects.filter(id=pk, user=request.user).first()
    if not n:
        raise NotFoundError('Notification not found')
    if not n.is_read:
        n.is_read = True
        n.save(update_fields=['is_read'])
    return Response({'ok': True, 'data': _to_dict(n)})
