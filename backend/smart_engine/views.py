"""
API Views for the Smart Engine.

Thin REST endpoints over ``SmartEngine``: each view validates the request
envelope, builds an in-memory entity store from the submitted entities and
forwards the engine result. Engine errors are returned with their error
code; missing entities map to 404, every other engine error to 400.
"""

import logging

from django.conf import settings
from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiExample, extend_schema
from rest_framework import status
from rest_framework.decorators import api_view, throttle_classes
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.throttling import AnonRateThrottle

from .config import load_config, validate_config_overrides
from .errors import EntityNotFound, ErrorCode, SmartEngineError
from .serializers import (
    ConfigRequestSerializer,
    DependencyGraphRequestSerializer,
    DependencyValidationRequestSerializer,
    DuplicatesRequestSerializer,
    EstimateRequestSerializer,
    PrioritiesRequestSerializer,
    PriorityRequestSerializer,
    TaskReferenceSerializer,
    WorkloadRequestSerializer,
    WorkloadsRequestSerializer,
)
from .service import SmartEngine
from .snapshots import InMemoryEntityStore
from .workload import workload_heatmap

logger = logging.getLogger(__name__)


# ============================================
# RATE LIMITING CLASSES
# ============================================

class EngineRateThrottle(AnonRateThrottle):
    """Rate limit for engine endpoints - 30 requests per minute."""
    rate = '30/min'


class DependencyRateThrottle(AnonRateThrottle):
    """Rate limit for dependency endpoints - 60 requests per minute."""
    rate = '60/min'


# ============================================
# HELPERS
# ============================================

ENTITY_SCHEMA = {
    'tasks': {'type': 'array', 'items': {'type': 'object'}},
    'users': {'type': 'array', 'items': {'type': 'object'}},
    'projects': {'type': 'array', 'items': {'type': 'object'}},
}


def _request_schema(properties: dict, required: list = ()) -> dict:
    return {
        'application/json': {
            'type': 'object',
            'properties': {**ENTITY_SCHEMA, **properties},
            'required': list(required),
        }
    }


def _invalid_request(serializer) -> Response:
    logger.info("Rejected smart engine request: %s", serializer.errors)
    return Response(
        {
            'success': False,
            'error_code': ErrorCode.ERR_MISSING_FIELD.value,
            'errors': serializer.errors,
            'message': 'Invalid input data. Please check your request format.'
        },
        status=status.HTTP_400_BAD_REQUEST
    )


def _error_response(error: SmartEngineError) -> Response:
    logger.info("Smart engine error %s: %s", error.code.value, error.message)
    code = status.HTTP_404_NOT_FOUND if isinstance(error, EntityNotFound) else status.HTTP_400_BAD_REQUEST
    return Response({'success': False, **error.to_dict()}, status=code)


def _success(**payload) -> Response:
    return Response({
        'success': True,
        'error_code': ErrorCode.SUCCESS.value,
        **payload
    })


def _engine(data: dict) -> SmartEngine:
    """Engine over the entities submitted with the request."""
    store = InMemoryEntityStore(
        tasks=data['tasks'],
        users=data['users'],
        projects=data['projects']
    )
    return SmartEngine(store, base_config=getattr(settings, 'SMART_ENGINE', None))


# ============================================
# API ENDPOINTS
# ============================================

@extend_schema(
    summary="Engine configuration",
    description="""
    GET returns the effective configuration (defaults plus deployment overrides).
    POST merges the posted project settings over it, rejecting negative or
    non-numeric weights and thresholds.
    """,
    request={
        'application/json': {
            'type': 'object',
            'properties': {'settings': {'type': 'object'}}
        }
    },
    responses={200: OpenApiTypes.OBJECT},
    examples=[
        OpenApiExample(
            'Override one weight',
            value={'settings': {'smart_engine': {'priority': {'weights': {'urgency': 6}}}}},
            request_only=True
        )
    ],
    tags=['Configuration']
)
@api_view(['GET', 'POST'])
@throttle_classes([DependencyRateThrottle])
def engine_config(request: Request) -> Response:
    """
    Return the effective engine configuration.

    GET  /api/smart-engine/config/
    POST /api/smart-engine/config/   {"settings": {"smart_engine": {...}}}
    """
    base = getattr(settings, 'SMART_ENGINE', None)
    project_settings = None

    if request.method == 'POST':
        serializer = ConfigRequestSerializer(data=request.data)
        if not serializer.is_valid():
            return _invalid_request(serializer)
        project_settings = serializer.validated_data['settings']

        errors = validate_config_overrides(project_settings)
        if errors:
            logger.info("Rejected configuration overrides: %s", [e.message for e in errors])
            return Response(
                {
                    'success': False,
                    'error_code': ErrorCode.ERR_INVALID_CONFIG.value,
                    'errors': [e.to_dict() for e in errors],
                    'message': errors[0].message
                },
                status=status.HTTP_400_BAD_REQUEST
            )

    try:
        config = load_config(project_settings, base=base)
    except SmartEngineError as error:
        return _error_response(error)

    return _success(config=config.to_dict())


@extend_schema(
    summary="Calculate priority for a task",
    description="""
    Score one task from 0 to 100 with the contributing factors and a
    human-readable explanation. The number of incomplete dependencies is
    resolved from the submitted tasks.
    """,
    request=_request_schema({
        'task_id': {'type': 'string'},
        'project_id': {'type': 'string'},
        'assignee_ids': {'type': 'array', 'items': {'type': 'string'}},
        'current_date': {'type': 'string', 'format': 'date-time'},
        'include_workload': {'type': 'boolean'},
    }, required=['task_id']),
    responses={200: OpenApiTypes.OBJECT},
    tags=['Priority']
)
@api_view(['POST'])
@throttle_classes([EngineRateThrottle])
def calculate_priority(request: Request) -> Response:
    """
    POST /api/smart-engine/priority/

    Request Body:
    {
        "task_id": "t1",
        "tasks": [...], "users": [...], "projects": [...],
        "project_id": "p1",               // Optional, defaults to the task's project
        "assignee_ids": ["u1"],           // Optional, defaults to the task's assignees
        "current_date": "2025-01-01T09:00:00Z",   // Optional
        "include_workload": false         // Optional
    }
    """
    serializer = PriorityRequestSerializer(data=request.data)
    if not serializer.is_valid():
        return _invalid_request(serializer)
    data = serializer.validated_data

    try:
        result = _engine(data).calculate_priority(
            data['task_id'],
            project_id=data['project_id'],
            assignee_ids=data['assignee_ids'],
            now=data['current_date'],
            include_workload=data['include_workload']
        )
    except SmartEngineError as error:
        return _error_response(error)

    return _success(priority=result.to_dict())


@extend_schema(
    summary="Calculate priorities for multiple tasks",
    description="Score several tasks and return them highest first; ties keep request order.",
    request=_request_schema({
        'task_ids': {'type': 'array', 'items': {'type': 'string'}},
        'project_id': {'type': 'string'},
        'current_date': {'type': 'string', 'format': 'date-time'},
        'include_workload': {'type': 'boolean'},
    }, required=['task_ids']),
    responses={200: OpenApiTypes.OBJECT},
    tags=['Priority']
)
@api_view(['POST'])
@throttle_classes([EngineRateThrottle])
def calculate_priorities(request: Request) -> Response:
    """
    POST /api/smart-engine/priorities/
    """
    serializer = PrioritiesRequestSerializer(data=request.data)
    if not serializer.is_valid():
        return _invalid_request(serializer)
    data = serializer.validated_data

    try:
        results = _engine(data).calculate_priorities(
            data['task_ids'],
            project_id=data['project_id'],
            now=data['current_date'],
            include_workload=data['include_workload']
        )
    except SmartEngineError as error:
        return _error_response(error)

    return _success(
        count=len(results),
        priorities=[result.to_dict() for result in results]
    )


@extend_schema(
    summary="Calculate workload for a user",
    description="Weekly load of the user's open tasks compared with their capacity.",
    request=_request_schema({
        'user_id': {'type': 'string'},
        'task_ids': {'type': 'array', 'items': {'type': 'string'}},
    }, required=['user_id']),
    responses={200: OpenApiTypes.OBJECT},
    tags=['Workload']
)
@api_view(['POST'])
@throttle_classes([EngineRateThrottle])
def calculate_workload(request: Request) -> Response:
    """
    POST /api/smart-engine/workload/
    """
    serializer = WorkloadRequestSerializer(data=request.data)
    if not serializer.is_valid():
        return _invalid_request(serializer)
    data = serializer.validated_data

    try:
        result = _engine(data).calculate_workload(data['user_id'], task_ids=data['task_ids'])
    except SmartEngineError as error:
        return _error_response(error)

    return _success(workload=result.to_dict())


@extend_schema(
    summary="Calculate workloads for multiple users",
    description="Workload per user plus a status heatmap. Defaults to every submitted user.",
    request=_request_schema({
        'user_ids': {'type': 'array', 'items': {'type': 'string'}},
        'task_ids': {'type': 'array', 'items': {'type': 'string'}},
        'project_id': {'type': 'string'},
    }),
    responses={200: OpenApiTypes.OBJECT},
    tags=['Workload']
)
@api_view(['POST'])
@throttle_classes([EngineRateThrottle])
def calculate_workloads(request: Request) -> Response:
    """
    POST /api/smart-engine/workloads/
    """
    serializer = WorkloadsRequestSerializer(data=request.data)
    if not serializer.is_valid():
        return _invalid_request(serializer)
    data = serializer.validated_data

    try:
        results = _engine(data).calculate_workloads(
            user_ids=data['user_ids'],
            task_ids=data['task_ids'],
            project_id=data['project_id']
        )
    except SmartEngineError as error:
        return _error_response(error)

    if not results:
        return Response(
            {
                'success': False,
                'error_code': ErrorCode.ERR_ENTITY_NOT_FOUND.value,
                'message': 'No users found'
            },
            status=status.HTTP_404_NOT_FOUND
        )

    return _success(
        count=len(results),
        workloads=[result.to_dict() for result in results],
        heatmap=workload_heatmap(results)
    )


@extend_schema(
    summary="Estimate time for a task",
    description="""
    Estimate from similar completed tasks (median of actual times), or from
    the assignee's historical averages when there are too few samples.
    """,
    request=_request_schema({
        'task_id': {'type': 'string'},
        'user_id': {'type': 'string'},
        'project_id': {'type': 'string'},
        'historical_ids': {'type': 'array', 'items': {'type': 'string'}},
    }, required=['task_id']),
    responses={200: OpenApiTypes.OBJECT},
    tags=['Estimation']
)
@api_view(['POST'])
@throttle_classes([EngineRateThrottle])
def estimate_time(request: Request) -> Response:
    """
    POST /api/smart-engine/estimate/
    """
    serializer = EstimateRequestSerializer(data=request.data)
    if not serializer.is_valid():
        return _invalid_request(serializer)
    data = serializer.validated_data

    try:
        result = _engine(data).estimate_time(
            data['task_id'],
            historical_ids=data['historical_ids'],
            user_id=data['user_id'],
            project_id=data['project_id']
        )
    except SmartEngineError as error:
        return _error_response(error)

    return _success(estimate=result.to_dict())


@extend_schema(
    summary="Detect duplicate tasks",
    description="Tasks whose titles are similar (Jaccard similarity of title tokens).",
    request=_request_schema({
        'task_ids': {'type': 'array', 'items': {'type': 'string'}},
        'project_id': {'type': 'string'},
    }),
    responses={200: OpenApiTypes.OBJECT},
    tags=['Duplicates']
)
@api_view(['POST'])
@throttle_classes([EngineRateThrottle])
def detect_duplicates(request: Request) -> Response:
    """
    POST /api/smart-engine/duplicates/
    """
    serializer = DuplicatesRequestSerializer(data=request.data)
    if not serializer.is_valid():
        return _invalid_request(serializer)
    data = serializer.validated_data

    try:
        results = _engine(data).detect_duplicates(
            task_ids=data['task_ids'],
            project_id=data['project_id']
        )
    except SmartEngineError as error:
        return _error_response(error)

    return _success(
        count=len(results),
        duplicates=[result.to_dict() for result in results]
    )


@extend_schema(
    summary="Analyze dependency impact",
    description="Tasks that directly or transitively depend on the given task.",
    request=_request_schema({'task_id': {'type': 'string'}}, required=['task_id']),
    responses={200: OpenApiTypes.OBJECT},
    tags=['Dependencies']
)
@api_view(['POST'])
@throttle_classes([DependencyRateThrottle])
def dependency_impact(request: Request) -> Response:
    """
    POST /api/smart-engine/dependencies/impact/
    """
    serializer = TaskReferenceSerializer(data=request.data)
    if not serializer.is_valid():
        return _invalid_request(serializer)
    data = serializer.validated_data

    try:
        result = _engine(data).analyze_dependency_impact(data['task_id'])
    except SmartEngineError as error:
        return _error_response(error)

    return _success(impact=result.to_dict())


@extend_schema(
    summary="Dependency graph",
    description="Upstream dependencies and downstream dependents up to max_depth hops.",
    request=_request_schema({
        'task_id': {'type': 'string'},
        'max_depth': {'type': 'integer', 'minimum': 1, 'maximum': 20},
    }, required=['task_id']),
    responses={200: OpenApiTypes.OBJECT},
    tags=['Dependencies']
)
@api_view(['POST'])
@throttle_classes([DependencyRateThrottle])
def dependency_graph(request: Request) -> Response:
    """
    POST /api/smart-engine/dependencies/graph/
    """
    serializer = DependencyGraphRequestSerializer(data=request.data)
    if not serializer.is_valid():
        return _invalid_request(serializer)
    data = serializer.validated_data

    try:
        result = _engine(data).dependency_graph(data['task_id'], max_depth=data['max_depth'])
    except SmartEngineError as error:
        return _error_response(error)

    return _success(graph=result.to_dict())


@extend_schema(
    summary="Validate dependencies",
    description="""
    Validate the complete dependency list a task should have: self-dependency,
    missing tasks and cycles are rejected with a structured error.
    """,
    request=_request_schema({
        'task_id': {'type': 'string', 'nullable': True},
        'dependency_ids': {'type': 'array', 'items': {'type': 'string'}},
    }, required=['dependency_ids']),
    responses={200: OpenApiTypes.OBJECT, 400: OpenApiTypes.OBJECT},
    tags=['Dependencies']
)
@api_view(['POST'])
@throttle_classes([DependencyRateThrottle])
def validate_dependencies(request: Request) -> Response:
    """
    POST /api/smart-engine/dependencies/validate/

    Responds 200 with the de-duplicated ids when the set is acceptable, and
    400 with the validation error otherwise.
    """
    serializer = DependencyValidationRequestSerializer(data=request.data)
    if not serializer.is_valid():
        return _invalid_request(serializer)
    data = serializer.validated_data

    try:
        engine = _engine(data)
        result = engine.validate_dependencies(data['task_id'], data['dependency_ids'])
    except SmartEngineError as error:
        return _error_response(error)

    if not result.valid:
        return _error_response(result.error)

    return _success(validation=result.to_dict())


@extend_schema(
    summary="Unblock dependent tasks",
    description="Report which dependents become unblocked once the given task is done.",
    request=_request_schema({'task_id': {'type': 'string'}}, required=['task_id']),
    responses={200: OpenApiTypes.OBJECT},
    tags=['Dependencies']
)
@api_view(['POST'])
@throttle_classes([DependencyRateThrottle])
def unblock_dependents(request: Request) -> Response:
    """
    POST /api/smart-engine/dependencies/unblock/
    """
    serializer = TaskReferenceSerializer(data=request.data)
    if not serializer.is_valid():
        return _invalid_request(serializer)
    data = serializer.validated_data

    try:
        result = _engine(data).unblock_dependent_tasks(data['task_id'])
    except SmartEngineError as error:
        return _error_response(error)

    return _success(report=result.to_dict())


@extend_schema(
    summary="API information",
    description="Get API information and available endpoints.",
    responses={200: OpenApiTypes.OBJECT},
    tags=['Info']
)
@api_view(['GET'])
def api_info(request: Request) -> Response:
    """
    Return API information and available endpoints.

    GET /api/
    """
    return Response({
        'name': 'Task Intelligence Engine API',
        'version': '1.0.0',
        'documentation': '/api/docs/',
        'features': [
            'Explainable multi-factor priority scoring',
            'Workload and capacity analysis',
            'Time estimation from historical tasks',
            'Duplicate task detection',
            'Dependency validation and impact analysis',
            'Per-project configuration overrides',
            'Rate limiting',
            'OpenAPI/Swagger documentation'
        ],
        'endpoints': {
            'GET /api/smart-engine/config/': 'Effective engine configuration',
            'POST /api/smart-engine/config/': 'Configuration merged with project settings',
            'POST /api/smart-engine/priority/': 'Priority for one task',
            'POST /api/smart-engine/priorities/': 'Ranked priorities for several tasks',
            'POST /api/smart-engine/workload/': 'Workload for one user',
            'POST /api/smart-engine/workloads/': 'Workloads and heatmap',
            'POST /api/smart-engine/estimate/': 'Time estimate for a task',
            'POST /api/smart-engine/duplicates/': 'Duplicate detection',
            'POST /api/smart-engine/dependencies/impact/': 'Dependency impact analysis',
            'POST /api/smart-engine/dependencies/graph/': 'Dependency graph',
            'POST /api/smart-engine/dependencies/validate/': 'Dependency validation',
            'POST /api/smart-engine/dependencies/unblock/': 'Unblocked dependents report',
            'GET /api/docs/': 'Interactive API documentation',
            'GET /api/schema/': 'OpenAPI schema',
            'GET /api/': 'This info endpoint'
        },
        'error_codes': {
            code.value: code.name for code in ErrorCode
        }
    })
