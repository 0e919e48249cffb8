from rest_framework import serializers, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from drf_spectacular.utils import OpenApiResponse, extend_schema, inline_serializer

from apps.accounts.principal import Principal
from .permissions import CanCreateOrders, CanDeleteOrders, CanUpdateOrderStatus
from .serializers import (
    CreateOrderSerializer,
    OrderListQuerySerializer,
    OrderRecordSerializer,
    UpdateStatusSerializer,
)
from .services import get_order_service


class OrderViewSet(viewsets.ViewSet):
    """
    Thin HTTP layer over OrderService. Role gates here are coarse; the
    service re-checks scope and per-status rules for every call.
    """
    lookup_value_regex = r"\d+"

    def get_permissions(self):
        if self.action == "create":
            classes = [IsAuthenticated, CanCreateOrders]
        elif self.action == "update_status":
            classes = [IsAuthenticated, CanUpdateOrderStatus]
        elif self.action == "destroy":
            classes = [IsAuthenticated, CanDeleteOrders]
        else:
            classes = [IsAuthenticated]
        return [permission() for permission in classes]

    @property
    def service(self):
        return get_order_service()

    @extend_schema(parameters=[OrderListQuerySerializer], responses=OrderRecordSerializer(many=True))
    def list(self, request):
        query = OrderListQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)

        orders = self.service.list_orders(
            Principal.from_user(request.user),
            branch_id=query.validated_data.get("branch_id"),
            status=query.validated_data.get("status") or None,
            customer_id=query.validated_data.get("customer_id"),
        )
        return Response(OrderRecordSerializer(orders, many=True).data)

    @extend_schema(request=CreateOrderSerializer, responses={201: OrderRecordSerializer})
    def create(self, request):
        serializer = CreateOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        order = self.service.create_order(
            Principal.from_user(request.user),
            serializer.to_line_requests(),
            branch_id=data.get("branch_id"),
            delivery_address=data.get("delivery_address"),
            customer_id=data.get("customer_id"),
        )
        return Response(OrderRecordSerializer(order).data, status=status.HTTP_201_CREATED)

    @extend_schema(responses=OrderRecordSerializer)
    def retrieve(self, request, pk=None):
        order = self.service.get_order(Principal.from_user(request.user), int(pk))
        return Response(OrderRecordSerializer(order).data)

    @extend_schema(
        request=UpdateStatusSerializer,
        responses=inline_serializer("OrderStatusUpdated", {
            "message": serializers.CharField(),
            "order": OrderRecordSerializer(),
        }),
    )
    @action(detail=True, methods=["put"], url_path="status")
    def update_status(self, request, pk=None):
        serializer = UpdateStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        order = self.service.update_status(
            Principal.from_user(request.user),
            int(pk),
            serializer.validated_data["status"],
        )
        return Response({
            "message": "Order status updated successfully",
            "order": OrderRecordSerializer(order).data,
        })

    @extend_schema(responses={200: OpenApiResponse(description="Order deleted")})
    def destroy(self, request, pk=None):
        self.service.delete_order(Principal.from_user(request.user), int(pk))
        return Response({"message": "Order deleted successfully"})
