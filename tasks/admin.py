from django.contrib import admin
from .models import Sprint, DevTask, TaskAssignment


class TaskAssignmentInline(admin.TabularInline):
    model = TaskAssignment
    extra = 0
    fields = ('user', 'assigned_at')
    readonly_fields = ('assigned_at',)


@admin.register(DevTask)
class DevTaskAdmin(admin.ModelAdmin):
    list_display = (
        'issue_key', 'title', 'type', 'status', 'priority', 'story_points',
        'product', 'sprint', 'implementor', 'created_at'
    )
    list_filter = ('status', 'type', 'tenant', 'product', 'severity')
    search_fields = ('issue_key', 'title', 'description')
    readonly_fields = ('issue_key', 'closed_at', 'created_at', 'updated_at')
    raw_id_fields = ('implementor', 'developer', 'tester', 'created_by', 'reporter', 'support_ticket')
    inlines = [TaskAssignmentInline]

    fieldsets = (
        ('Basic Information', {
            'fields': ('issue_key', 'tenant', 'product', 'feature', 'title', 'description', 'type', 'status', 'priority')
        }),
        ('Planning', {
            'fields': ('sprint', 'story_points', 'estimate', 'actual_time', 'due_date', 'labels', 'blocked_reason')
        }),
        ('Bug Details', {
            'fields': ('severity', 'environment'),
            'classes': ('collapse',)
        }),
        ('Team', {
            'fields': ('implementor', 'developer', 'tester')
        }),
        ('Product Structure', {
            'fields': ('module', 'component', 'addon'),
            'classes': ('collapse',)
        }),
        ('Resolution', {
            'fields': ('resolution', 'resolution_note', 'closed_at')
        }),
        ('Metadata', {
            'fields': ('support_ticket', 'metadata', 'created_by', 'reporter', 'created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )


@admin.register(Sprint)
class SprintAdmin(admin.ModelAdmin):
    list_display = ('name', 'product', 'status', 'start_date', 'end_date', 'task_count')
    list_filter = ('status', 'product')
    search_fields = ('name', 'goal')

    def task_count(self, obj):
        return obj.tasks.count()
    task_count.short_description = 'Tasks'
