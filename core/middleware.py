from pathlib import Path

from dotenv import load_dotenv

# Load .env from the project root (same directory as manage.py)
env_path = Path(__file__).resolve().parent.parent / '.env'
load_dotenv(env_path, override=True)


def get_client_ip(request):
    """Client IP, honouring X-Forwarded-For from the fronting proxy."""
    x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
    if x_forwarded_for:
        return x_forwarded_for.split(',')[0].strip()
    return request.META.get('REMOTE_ADDR') or 'unknown'


class ClientIPMiddleware:
    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        request.client_ip = get_client_ip(request)
        return self.get_response(request)
