import django_filters
from django.db.models import F, Q
from django.db.models.functions import Coalesce
from .models import Product


class ProductFilter(django_filters.FilterSet):
    """Query string filters for product listings"""
    search = django_filters.CharFilter(method='filter_search')
    category_id = django_filters.NumberFilter(field_name='category_id')
    is_active = django_filters.BooleanFilter(field_name='is_active')
    min_price = django_filters.NumberFilter(field_name='price', lookup_expr='gte')
    max_price = django_filters.NumberFilter(field_name='price', lookup_expr='lte')
    low_stock = django_filters.BooleanFilter(method='filter_low_stock')
    in_stock = django_filters.BooleanFilter(method='filter_in_stock')

    class Meta:
        model = Product
        fields = ['search', 'category_id', 'is_active', 'min_price', 'max_price', 'low_stock', 'in_stock']

    def filter_search(self, queryset, name, value):
        if not value:
            return queryset
        return queryset.filter(Q(name__icontains=value) | Q(sku__icontains=value))

    def filter_low_stock(self, queryset, name, value):
        if value is None:
            return queryset
        queryset = queryset.annotate(
            alert_level=Coalesce('min_stock_alert', F('workspace__default_min_stock_alert'))
        )
        if value:
            return queryset.filter(stock__lte=F('alert_level'))
        return queryset.filter(stock__gt=F('alert_level'))

    def filter_in_stock(self, queryset, name, value):
        if value is None:
            return queryset
        return queryset.filter(stock__gt=0) if value else queryset.filter(stock__lte=0)
