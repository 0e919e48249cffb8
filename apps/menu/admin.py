from django.contrib import admin
from .models import MenuItem


@admin.register(MenuItem)
class MenuItemAdmin(admin.ModelAdmin):
    list_display = ('name', 'branch', 'category', 'price', 'is_available', 'updated_at')
    list_filter = ('branch', 'category', 'is_available')
    list_editable = ('is_available',)
    search_fields = ('name', 'category')
