from django.urls import include, path

from apps.monitoring.api import health_view
from apps.orders.views import MoneyTransfersView

urlpatterns = [
    path("api/orders/", include("apps.orders.urls")),
    path("api/transfers/", MoneyTransfersView.as_view(), name="transfers"),
    path("api/health/", health_view, name="health"),
]
