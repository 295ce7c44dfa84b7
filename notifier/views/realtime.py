from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..permissions import IsAdminRole
from ..realtime import get_registry


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminRole])
def realtime_status(request):
    """Number of notification streams open in this server process."""
    return Response({'ok': True, 'connections': get_registry().count()})
