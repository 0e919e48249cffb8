from django.contrib import admin
from .models import Order, OrderItem, OrderTimeline


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    readonly_fields = ('menu_item', 'menu_item_name', 'unit_price', 'quantity', 'subtotal')

    def has_add_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


class OrderTimelineInline(admin.TabularInline):
    model = OrderTimeline
    extra = 0
    readonly_fields = ('timestamp', 'status', 'note', 'created_by')

    def has_add_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    """
    Read-only view of orders. Status changes go through the API so the
    transition rules and refunds always apply.
    """
    list_display = ('id', 'branch', 'customer', 'status', 'total_amount', 'created_at')
    list_filter = ('status', 'branch', 'created_at')
    search_fields = ('id', 'customer__username', 'delivery_address')
    inlines = [OrderItemInline, OrderTimelineInline]
    readonly_fields = (
        'id',
        'branch',
        'customer',
        'status',
        'total_amount',
        'delivery_address',
        'created_at',
        'updated_at',
    )

    def has_add_permission(self, request):
        return False
