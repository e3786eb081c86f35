from django.urls import path
from . import views

app_name = "payouts"

urlpatterns = [
    path("provider/bank-account/", views.bank_account, name="bank_account"),
    path("provider/bank-account/verify/", views.bank_account_verify, name="bank_account_verify"),
    path("provider/bank-account/delete-request/", views.bank_account_delete_request, name="bank_account_delete_request"),
    path("provider/payout/request/", views.payout_request, name="payout_request"),
    path("admin/payouts/", views.admin_payout_list, name="admin_payout_list"),
    path("admin/payouts/<int:payout_id>/approve/", views.admin_payout_decide, name="admin_payout_decide"),
    path("admin/payouts/<int:payout_id>/complete/", views.admin_payout_complete, name="admin_payout_complete"),
    path("admin/bank-account-requests/", views.admin_delete_request_list, name="admin_delete_request_list"),
    path(
        "admin/bank-account-requests/<int:request_id>/resolve/",
        views.admin_delete_request_resolve,
        name="admin_delete_request_resolve",
    ),
]
