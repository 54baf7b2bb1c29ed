"""Provider helpers for wiring the notification port.

``get_notifier`` returns the HTTP client for the notifications service when
``settings.USE_HTTP_ADAPTERS`` is truthy, and the in-process stub
otherwise (tests and local development).
"""

from django.conf import settings

from .adapters import NotificationStub
from .domain import NotificationPort
from .http_adapters import HttpNotificationClient

_stub = NotificationStub()


def get_notifier() -> NotificationPort:
    """Return the configured notification port implementation."""
    if getattr(settings, "USE_HTTP_ADAPTERS", False):
        return HttpNotificationClient()
    return _stub
