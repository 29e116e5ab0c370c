from django.contrib import admin
from .models import Tenant, Client


class ClientInline(admin.TabularInline):
    model = Client
    extra = 0
    fields = ('name', 'domain', 'type', 'tier', 'is_active')


@admin.register(Tenant)
class TenantAdmin(admin.ModelAdmin):
    list_display = ('name', 'slug', 'plan', 'is_active', 'clients_count', 'created_at')
    list_filter = ('plan', 'is_active')
    search_fields = ('name', 'slug')
    prepopulated_fields = {'slug': ('name',)}
    inlines = [ClientInline]

    def clients_count(self, obj):
        return obj.clients.count()
    clients_count.short_description = 'Clients'


@admin.register(Client)
class ClientAdmin(admin.ModelAdmin):
    list_display = ('name', 'tenant', 'type', 'tier', 'domain', 'is_active')
    list_filter = ('type', 'tier', 'is_active', 'tenant')
    search_fields = ('name', 'domain')
