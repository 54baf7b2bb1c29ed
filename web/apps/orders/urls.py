from django.urls import path

from .views import (
    OrderAcceptView,
    OrderAttemptsView,
    OrderNoteDetailView,
    OrderNotesView,
    OrderQuoteView,
    OrdersCollectionView,
    OrdersPingView,
    OrderTransitionView,
    RetrieveOrderView,
)

app_name = "orders"

urlpatterns = [
    path("ping/", OrdersPingView.as_view(), name="ping"),
    path("", OrdersCollectionView.as_view(), name="orders-collection"),  # GET list / POST create
    path("quote/", OrderQuoteView.as_view(), name="orders-quote"),
    path("<uuid:oid>/", RetrieveOrderView.as_view(), name="orders-detail"),
    path("<uuid:oid>/transitions/", OrderTransitionView.as_view(), name="orders-transition"),
    path("<uuid:oid>/accept/", OrderAcceptView.as_view(), name="orders-accept"),
    path("<uuid:oid>/attempts/", OrderAttemptsView.as_view(), name="orders-attempts"),
    path("<uuid:oid>/notes/", OrderNotesView.as_view(), name="orders-notes"),
    path("<uuid:oid>/notes/<int:note_id>/", OrderNoteDetailView.as_view(), name="orders-note-detail"),
]
