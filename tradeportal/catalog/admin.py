from django.contrib import admin
from .models import Category, Product


@admin.register(Category)
class CategoryAdmin(admin.ModelAdmin):
    list_display = ['name', 'is_active', 'created_at']
    list_filter = ['is_active']
    search_fields = ['name']


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ['name', 'sku', 'category', 'origin_country', 'unit', 'price', 'currency', 'in_stock', 'is_active']
    list_filter = ['category', 'origin_country', 'in_stock', 'is_active']
    search_fields = ['name', 'sku', 'supplier_name']
    ordering = ['name']
