"""Order API views.

Exposes the ``OrderService`` via HTTP using a DRF ViewSet.
Domain errors propagate to ``domain_exception_handler``, which renders
``{"code", "detail"}`` with the status registered for the error code;
the view never swallows generic exceptions.
"""

from __future__ import annotations

from pydantic import ValidationError as PydanticValidationError
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.throttling import BaseThrottle
from rest_framework.viewsets import ViewSet

from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.serializers import (
    AssignTransporterSerializer,
    CancelOrderSerializer,
    CreateOrderSerializer,
    OrderListQuerySerializer,
    PaymentSerializer,
    TrackingNoteSerializer,
    UpdateStatusSerializer,
)
from modules.orders.services import OrderService
from modules.products.repositories.django_repository import ProductDjangoRepository


def _invalid(exc: PydanticValidationError) -> Response:
    return Response(
        {"detail": [error["msg"] for error in exc.errors()]},
        status=status.HTTP_400_BAD_REQUEST,
    )


class OrderViewSet(ViewSet):
    """ViewSet for the order lifecycle.

    Uses ``OrderService`` with injected repositories (DIP).  All ORM
    access goes through the service/repository layer; responses are the
    service's output DTOs.
    """

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._service = OrderService(
            order_repository=OrderDjangoRepository(),
            product_repository=ProductDjangoRepository(),
        )

    def get_throttles(self) -> list[BaseThrottle]:
        """Throttle scope per action."""
        throttle_scope: str | None
        if self.action == "create":
            throttle_scope = "order_creation"
        elif self.action in {"list", "retrieve"}:
            throttle_scope = "order_listing"
        else:
            throttle_scope = None
        self.throttle_scope = throttle_scope
        return super().get_throttles()

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create(self, request: Request) -> Response:
        """POST /api/v1/orders/

        Returns 201 with the order view.  ``warnings`` is non-empty when
        the order was created but its tracking entry could not be written.
        """
        serializer = CreateOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            dto = serializer.to_dto()
        except PydanticValidationError as exc:
            return _invalid(exc)

        order = self._service.create_order(request.user, dto)
        return Response(order.model_dump(mode="json"), status=status.HTTP_201_CREATED)

    # ------------------------------------------------------------------
    # List / Retrieve
    # ------------------------------------------------------------------

    def list(self, request: Request) -> Response:
        """GET /api/v1/orders/?scope=&page=&page_size=

        Admins may also filter by ``status``, ``payment_status``,
        ``buyer``, ``farmer``, ``start_date`` and ``end_date``.
        """
        query = OrderListQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        params = query.validated_data

        result = self._service.list_orders(
            request.user,
            scope=params.get("scope"),
            page=params["page"],
            page_size=params.get("page_size"),
            filters=query.filters(),
        )
        return Response(result.model_dump(mode="json"))

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/orders/{pk}/"""
        order = self._service.get_order(pk, request.user)
        return Response(order.model_dump(mode="json"))

    @action(detail=False, methods=["get"], url_path=r"number/(?P<order_number>[^/]+)")
    def by_number(self, request: Request, order_number: str | None = None) -> Response:
        """GET /api/v1/orders/number/{order_number}/"""
        order = self._service.get_order_by_number(order_number, request.user)
        return Response(order.model_dump(mode="json"))

    @action(detail=False, methods=["get"])
    def summary(self, request: Request) -> Response:
        """GET /api/v1/orders/summary/"""
        summary = self._service.order_summary(request.user)
        return Response(summary.model_dump(mode="json"))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @action(detail=True, methods=["patch"], url_path="status")
    def update_status(self, request: Request, pk: str | None = None) -> Response:
        """PATCH /api/v1/orders/{pk}/status/"""
        serializer = UpdateStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = self._service.update_status(pk, request.user, serializer.to_dto())
        return Response(order.model_dump(mode="json"))

    @action(detail=True, methods=["put"], url_path="assign-transporter")
    def assign_transporter(self, request: Request, pk: str | None = None) -> Response:
        """PUT /api/v1/orders/{pk}/assign-transporter/"""
        serializer = AssignTransporterSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = self._service.assign_transporter(pk, request.user, serializer.to_dto())
        return Response(order.model_dump(mode="json"))

    @action(detail=True, methods=["post"])
    def payment(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/payment/"""
        serializer = PaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = self._service.pay(pk, request.user, serializer.to_dto())
        return Response(order.model_dump(mode="json"))

    @action(detail=True, methods=["post"])
    def cancel(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/cancel/

        Cancels the order, releases its stock and refunds it when paid.
        """
        serializer = CancelOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = self._service.cancel(
            pk, request.user, notes=serializer.validated_data["notes"]
        )
        return Response(order.model_dump(mode="json"))

    # ------------------------------------------------------------------
    # Tracking
    # ------------------------------------------------------------------

    @action(detail=True, methods=["get", "post"])
    def tracking(self, request: Request, pk: str | None = None) -> Response:
        """GET  /api/v1/orders/{pk}/tracking/ - history, oldest first.
        POST /api/v1/orders/{pk}/tracking/ - add a location update."""
        if request.method == "GET":
            entries = self._service.tracking_history(pk, request.user)
            return Response([entry.model_dump(mode="json") for entry in entries])

        serializer = TrackingNoteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = self._service.add_tracking_note(pk, request.user, serializer.to_dto())
        return Response(order.model_dump(mode="json"), status=status.HTTP_201_CREATED)

