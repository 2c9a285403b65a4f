from django.urls import path
from . import views

app_name = "production"

urlpatterns = [
    path("boms/", views.bom_list, name="bom-list"),
    path("boms/<int:bom_id>/", views.bom_detail, name="bom-detail"),

    path("batches/", views.batch_list, name="batch-list"),
    path("batches/<str:batch_number>/", views.batch_detail, name="batch-detail"),
    path("batches/<str:batch_number>/status/", views.batch_status, name="batch-status"),
    path("batches/<str:batch_number>/ingredients/", views.ingredient_list, name="ingredient-list"),
    path("batches/<str:batch_number>/ingredients/<int:ingredient_id>/usage/",
         views.ingredient_usage, name="ingredient-usage"),
    path("batches/<str:batch_number>/availability/", views.batch_availability, name="batch-availability"),

    path("qc-checks/", views.qc_check_list, name="qc-check-list"),

    path("lots/", views.lot_list, name="lot-list"),
    path("lots/<str:lot_number>/trace/", views.lot_trace, name="lot-trace"),

    path("stats/", views.production_stats, name="production-stats"),
]
