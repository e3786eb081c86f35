from django.urls import path
from . import views

app_name = "disputes"

urlpatterns = [
    path("disputes/", views.dispute_list, name="dispute_list"),
    path("disputes/create/", views.dispute_create, name="dispute_create"),
    path("disputes/resolve/", views.dispute_resolve, name="dispute_resolve"),
    path("disputes/<int:dispute_id>/communicate/", views.dispute_communicate, name="dispute_communicate"),
]
