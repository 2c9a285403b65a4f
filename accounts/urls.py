from django.urls import path

from accounts.views import access_views

app_name = "accounts"

urlpatterns = [
    path("me/", access_views.current_member, name="me"),
    path("roles/", access_views.list_roles, name="role-list"),
    path("audit-logs/", access_views.list_audit_logs, name="audit-log-list"),
]
