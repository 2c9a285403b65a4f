from django.urls import path
from . import views

app_name = "stock"

urlpatterns = [
    path("locations/", views.location_list, name="location-list"),
    path("locations/<int:location_id>/", views.location_detail, name="location-detail"),

    path("skus/", views.sku_list, name="sku-list"),
    path("skus/<int:sku_id>/", views.sku_detail, name="sku-detail"),

    path("levels/", views.level_list, name="level-list"),
    path("adjust/", views.adjust_inventory, name="adjust"),
    path("reserve/", views.reserve_stock, name="reserve"),
    path("release-reservation/", views.release_reservation, name="release-reservation"),
    path("movements/", views.movement_list, name="movement-list"),
    path("stats/", views.inventory_stats, name="inventory-stats"),

    path("purchases/", views.purchase_list, name="purchase-list"),
    path("purchases/<str:receipt_number>/", views.purchase_detail, name="purchase-detail"),
]
