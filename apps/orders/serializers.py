from rest_framework import serializers

from .domain import MAX_LINE_QUANTITY, LineRequest


class OrderLineInputSerializer(serializers.Serializer):
    menuItemId = serializers.IntegerField(source='menu_item_id')
    quantity = serializers.IntegerField(max_value=MAX_LINE_QUANTITY)


class CreateOrderSerializer(serializers.Serializer):
    """
    Request body for POST /orders/. Business checks (empty list, bad
    quantities, unknown branch) live in OrderBuilder so every caller gets
    the same reason codes.
    """
    branchId = serializers.IntegerField(source='branch_id', required=False, allow_null=True)
    items = OrderLineInputSerializer(many=True, required=False)
    deliveryAddress = serializers.CharField(
        source='delivery_address', required=False, allow_blank=True, allow_null=True
    )
    customerId = serializers.IntegerField(source='customer_id', required=False, allow_null=True)

    def to_line_requests(self):
        return [
            LineRequest(menu_item_id=item['menu_item_id'], quantity=item['quantity'])
            for item in self.validated_data.get('items', [])
        ]


class UpdateStatusSerializer(serializers.Serializer):
    # Validated against OrderStatus in the service for the invalid_status code
    status = serializers.CharField()


class OrderListQuerySerializer(serializers.Serializer):
    # Ids stay raw strings; the query service parses them only for roles
    # allowed to use them
    branchId = serializers.CharField(source='branch_id', required=False, allow_blank=True)
    status = serializers.CharField(required=False, allow_blank=True)
    customerId = serializers.CharField(source='customer_id', required=False, allow_blank=True)


class OrderLineSerializer(serializers.Serializer):
    id = serializers.IntegerField()
    menuItemId = serializers.IntegerField(source='menu_item_id', allow_null=True)
    menuItemName = serializers.CharField(source='menu_item_name')
    quantity = serializers.IntegerField()
    unitPrice = serializers.DecimalField(source='unit_price', max_digits=10, decimal_places=2)
    subtotal = serializers.DecimalField(max_digits=12, decimal_places=2)


class PaymentSerializer(serializers.Serializer):
    id = serializers.IntegerField()
    status = serializers.CharField()
    amount = serializers.DecimalField(max_digits=12, decimal_places=2)


class TimelineEntrySerializer(serializers.Serializer):
    status = serializers.CharField()
    note = serializers.CharField()
    createdById = serializers.IntegerField(source='created_by_id', allow_null=True)
    timestamp = serializers.DateTimeField()


class OrderRecordSerializer(serializers.Serializer):
    id = serializers.IntegerField()
    branchId = serializers.IntegerField(source='branch_id')
    customerId = serializers.IntegerField(source='customer_id')
    status = serializers.CharField()
    totalAmount = serializers.DecimalField(source='total_amount', max_digits=12, decimal_places=2)
    deliveryAddress = serializers.CharField(source='delivery_address', allow_null=True)
    createdAt = serializers.DateTimeField(source='created_at')
    items = OrderLineSerializer(many=True)
    payment = PaymentSerializer(allow_null=True)
    timeline = TimelineEntrySerializer(many=True)
