from django.apps import apps
from django.http import HttpResponse
from django.views.decorators.http import require_GET

from core.middleware import get_client_ip


def get_delivery():
    return apps.get_app_config('airportwx').delivery


@require_GET
def weather(request):
    """Current weather snapshot for ?airport=<id>."""
    client_ip = getattr(request, 'client_ip', None) or get_client_ip(request)
    result = get_delivery().request(
        request.GET.get('airport', ''),
        client_ip,
        if_none_match=request.headers.get('If-None-Match'),
        if_modified_since=request.headers.get('If-Modified-Since'),
    )

    response = HttpResponse(
        result.content,
        status=result.status,
        content_type='application/json',
    )
    for name, value in result.headers.items():
        response[name] = value
    return response
