from django.contrib import admin
from .models import (
    Product, Module, Component, Addon, Epic, Feature,
    ProductSequence, GlobalTicketCounter
)


class ModuleInline(admin.TabularInline):
    model = Module
    extra = 0
    fields = ('name', 'description', 'tenant')


class AddonInline(admin.TabularInline):
    model = Addon
    extra = 0
    fields = ('name', 'description', 'tenant')


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ('name', 'code', 'tenant', 'default_implementor', 'created_at')
    list_filter = ('tenant',)
    search_fields = ('name', 'code')
    inlines = [ModuleInline, AddonInline]


@admin.register(Component)
class ComponentAdmin(admin.ModelAdmin):
    list_display = ('name', 'module', 'tenant')
    list_filter = ('tenant',)
    search_fields = ('name',)


@admin.register(Epic)
class EpicAdmin(admin.ModelAdmin):
    list_display = ('issue_key', 'title', 'product', 'status', 'priority', 'created_at')
    list_filter = ('status', 'product')
    search_fields = ('issue_key', 'title')


@admin.register(Feature)
class FeatureAdmin(admin.ModelAdmin):
    list_display = ('issue_key', 'title', 'epic', 'status', 'priority', 'created_at')
    list_filter = ('status',)
    search_fields = ('issue_key', 'title')


@admin.register(ProductSequence)
class ProductSequenceAdmin(admin.ModelAdmin):
    """Counters are advanced by the key allocator only."""
    list_display = ('product', 'issue_type', 'next_num', 'created_at')
    list_filter = ('issue_type',)
    readonly_fields = ('product', 'issue_type', 'next_num', 'created_at')

    def has_add_permission(self, request):
        return False


@admin.register(GlobalTicketCounter)
class GlobalTicketCounterAdmin(admin.ModelAdmin):
    list_display = ('tenant', 'issue_type', 'next_num', 'created_at')
    readonly_fields = ('tenant', 'issue_type', 'next_num', 'created_at')

    def has_add_permission(self, request):
        return False
