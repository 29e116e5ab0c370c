from django.contrib import admin
from django.utils.html import format_html
from .models import (
    Ticket, TicketComment, TicketAttachment, TicketAuditLog,
    TicketLink, TicketTaskLink, TicketWatcher
)


class TicketCommentInline(admin.TabularInline):
    model = TicketComment
    extra = 0
    fields = ('user', 'content', 'is_internal', 'created_at')
    readonly_fields = ('created_at',)


class TicketWatcherInline(admin.TabularInline):
    model = TicketWatcher
    extra = 0
    fields = ('user', 'email', 'added_by', 'created_at')
    readonly_fields = ('created_at',)


@admin.register(Ticket)
class TicketAdmin(admin.ModelAdmin):
    list_display = (
        'issue_key', 'title', 'type', 'status_badge', 'priority_display',
        'product', 'client', 'assigned_to', 'created_at'
    )
    list_filter = ('status', 'type', 'tenant', 'product', 'created_at')
    search_fields = ('issue_key', 'title', 'description')
    readonly_fields = ('id', 'issue_key', 'created_at', 'updated_at', 'closed_at')
    raw_id_fields = ('created_by', 'reporter', 'assigned_to', 'parent')
    inlines = [TicketCommentInline, TicketWatcherInline]
    ordering = ('-created_at',)

    fieldsets = (
        ('Basic Information', {
            'fields': ('id', 'issue_key', 'tenant', 'title', 'description', 'type', 'status')
        }),
        ('Priority', {
            'fields': (
                ('client_priority', 'client_severity'),
                ('internal_priority', 'internal_severity'),
            )
        }),
        ('People', {
            'fields': ('client', 'product', 'created_by', 'reporter', 'assigned_to', 'parent')
        }),
        ('Planning', {
            'fields': ('labels', 'story_points', 'estimate', 'due_date', 'metadata'),
            'classes': ('collapse',)
        }),
        ('Resolution', {
            'fields': ('resolution', 'resolution_note', 'closed_at')
        }),
        ('Metadata', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )

    def status_badge(self, obj):
        colors = {
            'pending_internal_review': '#6B7280',
            'open': '#3B82F6',
            'in_progress': '#F59E0B',
            'resolved': '#10B981',
            'closed': '#374151',
            'cancelled': '#9CA3AF',
        }
        return format_html(
            '<span style="color: {}; font-weight: bold;">{}</span>',
            colors.get(obj.status, '#8B5CF6'), obj.get_status_display()
        )
    status_badge.short_description = 'Status'

    def priority_display(self, obj):
        if obj.internal_priority is not None:
            return f'P{obj.effective_priority} (client P{obj.client_priority})'
        return f'P{obj.effective_priority}'
    priority_display.short_description = 'Priority'


@admin.register(TicketAttachment)
class TicketAttachmentAdmin(admin.ModelAdmin):
    list_display = ('file_name', 'ticket', 'file_size', 'mime_type', 'uploaded_by', 'created_at')
    search_fields = ('file_name', 'ticket__issue_key')
    readonly_fields = ('created_at',)


@admin.register(TicketAuditLog)
class TicketAuditLogAdmin(admin.ModelAdmin):
    """Audit entries are never edited or removed."""
    list_display = ('ticket', 'change_type', 'user', 'old_value', 'new_value', 'created_at')
    list_filter = ('change_type', 'created_at')
    search_fields = ('ticket__issue_key',)
    readonly_fields = ('tenant', 'ticket', 'change_type', 'user', 'old_value', 'new_value', 'metadata', 'created_at')

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(TicketLink)
class TicketLinkAdmin(admin.ModelAdmin):
    list_display = ('source', 'link_type', 'target', 'created_by', 'created_at')
    list_filter = ('link_type',)
    search_fields = ('source__issue_key', 'target__issue_key')


@admin.register(TicketTaskLink)
class TicketTaskLinkAdmin(admin.ModelAdmin):
    list_display = ('ticket', 'task', 'created_at')
    search_fields = ('ticket__issue_key', 'task__issue_key')
