from rest_framework import serializers

from users.serializers import UserMinimalSerializer
from .models import DevTask, Sprint, TaskAssignment
from .workflow import STATUS_CHOICES, RESOLUTION_CHOICES, SEVERITY_CHOICES, ENVIRONMENT_CHOICES


class TaskAssignmentSerializer(serializers.ModelSerializer):
    user = UserMinimalSerializer(read_only=True)

    class Meta:
        model = TaskAssignment
        fields = ['id', 'user', 'assigned_at']
        read_only_fields = fields


class DevTaskListSerializer(serializers.ModelSerializer):
    implementor = UserMinimalSerializer(read_only=True)
    developer = UserMinimalSerializer(read_only=True)
    tester = UserMinimalSerializer(read_only=True)

    class Meta:
        model = DevTask
        fields = [
            'id', 'issue_key', 'title', 'type', 'status', 'priority', 'story_points',
            'severity', 'product', 'feature', 'sprint', 'support_ticket',
            'implementor', 'developer', 'tester', 'due_date', 'created_at', 'updated_at',
        ]
        read_only_fields = fields


class DevTaskSerializer(serializers.ModelSerializer):
    """Full task representation."""
    implementor = UserMinimalSerializer(read_only=True)
    developer = UserMinimalSerializer(read_only=True)
    tester = UserMinimalSerializer(read_only=True)
    created_by = UserMinimalSerializer(read_only=True)
    reporter = UserMinimalSerializer(read_only=True)
    assignments = TaskAssignmentSerializer(many=True, read_only=True)
    support_ticket_key = serializers.CharField(source='support_ticket.issue_key', read_only=True, default=None)

    class Meta:
        model = DevTask
        fields = [
            'id', 'issue_key', 'title', 'description', 'type', 'status', 'priority',
            'product', 'feature', 'sprint', 'module', 'component', 'addon',
            'story_points', 'estimate', 'actual_time', 'due_date', 'labels', 'blocked_reason',
            'severity', 'environment',
            'implementor', 'developer', 'tester', 'assignments',
            'support_ticket', 'support_ticket_key', 'metadata',
            'resolution', 'resolution_note', 'closed_at',
            'created_by', 'reporter', 'created_at', 'updated_at',
        ]
        read_only_fields = fields


class DevTaskWriteSerializer(serializers.Serializer):
    """
    Shape check for create, update and spawn payloads. Business rules live
    in tasks.lifecycle and tasks.commands.
    """
    feature_id = serializers.IntegerField(required=False, allow_null=True)
    title = serializers.CharField(max_length=255, required=False, allow_blank=True)
    description = serializers.CharField(required=False, allow_blank=True)
    type = serializers.ChoiceField(choices=DevTask.TYPE_CHOICES, required=False)
    status = serializers.ChoiceField(choices=STATUS_CHOICES, required=False)
    priority = serializers.IntegerField(required=False, min_value=1, max_value=4)
    story_points = serializers.IntegerField(required=False, allow_null=True)
    estimate = serializers.DecimalField(max_digits=7, decimal_places=2, required=False, allow_null=True)
    actual_time = serializers.DecimalField(max_digits=7, decimal_places=2, required=False, allow_null=True)
    due_date = serializers.DateField(required=False, allow_null=True)
    labels = serializers.ListField(child=serializers.CharField(max_length=50), required=False)
    blocked_reason = serializers.CharField(required=False, allow_blank=True)
    severity = serializers.ChoiceField(choices=SEVERITY_CHOICES, required=False, allow_null=True)
    environment = serializers.ChoiceField(choices=ENVIRONMENT_CHOICES, required=False, allow_null=True)
    implementor_id = serializers.IntegerField(required=False, allow_null=True)
    developer_id = serializers.IntegerField(required=False, allow_null=True)
    tester_id = serializers.IntegerField(required=False, allow_null=True)
    reporter_id = serializers.IntegerField(required=False, allow_null=True)
    module_id = serializers.IntegerField(required=False, allow_null=True)
    component_id = serializers.IntegerField(required=False, allow_null=True)
    addon_id = serializers.IntegerField(required=False, allow_null=True)
    sprint_id = serializers.IntegerField(required=False, allow_null=True)
    assignees = serializers.ListField(child=serializers.IntegerField(), required=False)
    metadata = serializers.JSONField(required=False, allow_null=True)
    resolution = serializers.ChoiceField(choices=RESOLUTION_CHOICES, required=False)
    resolution_note = serializers.CharField(required=False, allow_blank=True)


class TaskCloseSerializer(serializers.Serializer):
    # Checked against the taxonomy by tasks.workflow so the error names the valid values
    resolution = serializers.CharField()
    resolution_note = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    metadata = serializers.JSONField(required=False, allow_null=True)


class TaskAssignSerializer(serializers.Serializer):
    user_ids = serializers.ListField(child=serializers.IntegerField(), allow_empty=True)


class SprintSerializer(serializers.ModelSerializer):
    task_count = serializers.IntegerField(source='tasks.count', read_only=True)

    class Meta:
        model = Sprint
        fields = ['id', 'product', 'name', 'goal', 'start_date', 'end_date', 'status', 'task_count', 'created_at']
        read_only_fields = ['id', 'task_count', 'created_at']

    def validate_product(self, product):
        request = self.context.get('request')
        if request and product.tenant_id != request.user.tenant_id:
            raise serializers.ValidationError('Product not found.')
        return product

    def validate(self, attrs):
        start = attrs.get('start_date', getattr(self.instance, 'start_date', None))
        end = attrs.get('end_date', getattr(self.instance, 'end_date', None))
        if start and end and end < start:
            raise serializers.ValidationError({'end_date': 'End date must not be before start date.'})
        return attrs
