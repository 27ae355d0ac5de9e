import logging
from functools import wraps

from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_POST

from .models import Notification

logger = logging.getLogger(__name__)

LIST_LIMIT = 50


def staff_required(view):
    """JSON flavour of ``staff_member_required``: 403 instead of a login redirect."""
    @wraps(view)
    def wrapper(request, *args, **kwargs):
        user = request.user
        if not (user.is_authenticated and user.is_staff):
            return JsonResponse({"error": "Forbidden"}, status=403)
        return view(request, *args, **kwargs)
    return wrapper


@require_GET
@staff_required
def notification_list_view(request):
    items = Notification.objects.all()[:LIST_LIMIT]
    return JsonResponse([n.as_dict() for n in items], safe=False)


@csrf_exempt
@require_POST
@staff_required
def mark_read_view(request, pk: int):
    updated = Notification.objects.filter(pk=pk).update(read=True)
    if not updated:
        return JsonResponse({"error": "Notification not found"}, status=404)
    return JsonResponse(Notification.objects.get(pk=pk).as_dict())


@csrf_exempt
@require_POST
@staff_required
def mark_all_read_view(request):
    updated = Notification.objects.filter(read=False).update(read=True)
    logger.info("Marked %s notification(s) as read", updated)
    return JsonResponse({"message": "All notifications marked as read", "updated": updated})
