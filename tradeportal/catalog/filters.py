import django_filters
from django.db.models import Q
from .models import Product


class ProductFilter(django_filters.FilterSet):
    """Catalog filters for the public product listing"""

    search = django_filters.CharFilter(method='filter_search', label='Search')
    category = django_filters.NumberFilter(field_name='category_id', lookup_expr='exact')
    origin_country = django_filters.CharFilter(field_name='origin_country', lookup_expr='iexact')
    in_stock = django_filters.BooleanFilter(field_name='in_stock')
    min_price = django_filters.NumberFilter(field_name='price', lookup_expr='gte')
    max_price = django_filters.NumberFilter(field_name='price', lookup_expr='lte')

    class Meta:
        model = Product
        fields = ['search', 'category', 'origin_country', 'in_stock', 'min_price', 'max_price']

    def filter_search(self, queryset, name, value):
        """
        Multi-word search: every word must appear in name, SKU, description,
        supplier or category name (in any order).
        """
        if not value or not value.strip():
            return queryset

        for word in value.split():
            queryset = queryset.filter(
                Q(name__icontains=word) |
                Q(sku__icontains=word) |
                Q(description__icontains=word) |
                Q(supplier_name__icontains=word) |
                Q(category__name__icontains=word)
            )
        return queryset.distinct()
