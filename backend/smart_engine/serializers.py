"""
Request serializers for the Smart Engine API.

Every engine request carries the raw entities the persistence layer would
supply (``tasks``, ``users``, ``projects``) next to the ids the operation
works on. The entities themselves are validated by the snapshot
conversions, not here.
"""

from rest_framework import serializers


class EntitySetSerializer(serializers.Serializer):
    """Raw entities shared by every engine request."""

    tasks = serializers.ListField(
        child=serializers.DictField(),
        required=False,
        default=list
    )
    users = serializers.ListField(
        child=serializers.DictField(),
        required=False,
        default=list
    )
    projects = serializers.ListField(
        child=serializers.DictField(),
        required=False,
        default=list
    )


class PriorityRequestSerializer(EntitySetSerializer):
    task_id = serializers.CharField()
    project_id = serializers.CharField(required=False, allow_null=True, default=None)
    assignee_ids = serializers.ListField(
        child=serializers.CharField(),
        required=False,
        allow_null=True,
        default=None
    )
    current_date = serializers.DateTimeField(required=False, allow_null=True, default=None)
    include_workload = serializers.BooleanField(required=False, default=False)


class PrioritiesRequestSerializer(EntitySetSerializer):
    task_ids = serializers.ListField(
        child=serializers.CharField(),
        min_length=1,
        error_messages={
            'min_length': 'At least one task id is required'
        }
    )
    project_id = serializers.CharField(required=False, allow_null=True, default=None)
    current_date = serializers.DateTimeField(required=False, allow_null=True, default=None)
    include_workload = serializers.BooleanField(required=False, default=False)


class WorkloadRequestSerializer(EntitySetSerializer):
    user_id = serializers.CharField()
    task_ids = serializers.ListField(
        child=serializers.CharField(),
        required=False,
        allow_null=True,
        default=None
    )


class WorkloadsRequestSerializer(EntitySetSerializer):
    user_ids = serializers.ListField(
        child=serializers.CharField(),
        required=False,
        allow_null=True,
        default=None
    )
    task_ids = serializers.ListField(
        child=serializers.CharField(),
        required=False,
        allow_null=True,
        default=None
    )
    project_id = serializers.CharField(required=False, allow_null=True, default=None)


class EstimateRequestSerializer(EntitySetSerializer):
    task_id = serializers.CharField()
    user_id = serializers.CharField(required=False, allow_null=True, default=None)
    project_id = serializers.CharField(required=False, allow_null=True, default=None)
    historical_ids = serializers.ListField(
        child=serializers.CharField(),
        required=False,
        allow_null=True,
        default=None
    )


class DuplicatesRequestSerializer(EntitySetSerializer):
    task_ids = serializers.ListField(
        child=serializers.CharField(),
        required=False,
        allow_null=True,
        default=None
    )
    project_id = serializers.CharField(required=False, allow_null=True, default=None)

    def validate(self, attrs):
        """Either task ids or a project id selects the tasks to compare."""
        if attrs.get('task_ids') is None and attrs.get('project_id') is None:
            raise serializers.ValidationError("Task IDs or Project ID is required")
        return attrs


class TaskReferenceSerializer(EntitySetSerializer):
    task_id = serializers.CharField()


class DependencyGraphRequestSerializer(TaskReferenceSerializer):
    max_depth = serializers.IntegerField(
        min_value=1,
        max_value=20,
        required=False,
        allow_null=True,
        default=None
    )


class DependencyValidationRequestSerializer(EntitySetSerializer):
    # Null while the task is being created
    task_id = serializers.CharField(required=False, allow_null=True, default=None)
    dependency_ids = serializers.ListField(
        child=serializers.CharField(),
        allow_empty=True
    )


class ConfigRequestSerializer(serializers.Serializer):
    """Project settings to merge over the defaults."""

    settings = serializers.DictField(required=False, default=dict)
