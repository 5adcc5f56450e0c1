"""Order URL configuration.

Routes (under ``/api/v1/``)::

    orders/                                 POST create, GET list
    orders/summary/                         GET
    orders/number/{order_number}/           GET
    orders/{id}/                            GET
    orders/{id}/status/                     PATCH
    orders/{id}/assign-transporter/         PUT
    orders/{id}/payment/                    POST
    orders/{id}/cancel/                     POST
    orders/{id}/tracking/                   GET history, POST location update
"""

from __future__ import annotations

from rest_framework.routers import SimpleRouter

from modules.orders.views import OrderViewSet

router = SimpleRouter(trailing_slash=True)
router.register("orders", OrderViewSet, basename="order")

urlpatterns = router.urls
