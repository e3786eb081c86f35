from django.urls import path
from . import views

app_name = "bookings"

urlpatterns = [
    path("bookings/", views.booking_list, name="booking_list"),
    path("bookings/create/", views.booking_create, name="booking_create"),
    path("bookings/<int:booking_id>/", views.booking_detail, name="booking_detail"),
    path("bookings/<int:booking_id>/payment/", views.booking_payment, name="booking_payment"),
    path("bookings/<int:booking_id>/cancel/", views.booking_cancel, name="booking_cancel"),
    path("bookings/<int:booking_id>/complete/", views.booking_complete, name="booking_complete"),
    path("bookings/<int:booking_id>/session/start/", views.session_start, name="session_start"),
    path("chat/<int:booking_id>/", views.chat_messages, name="chat_messages"),
]
