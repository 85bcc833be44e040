"""
URL configuration for the smart_engine app.
"""

from django.urls import path
from . import views

urlpatterns = [
    path('', views.api_info, name='api-info'),
    path('smart-engine/config/', views.engine_config, name='engine-config'),
    path('smart-engine/priority/', views.calculate_priority, name='calculate-priority'),
    path('smart-engine/priorities/', views.calculate_priorities, name='calculate-priorities'),
    path('smart-engine/workload/', views.calculate_workload, name='calculate-workload'),
    path('smart-engine/workloads/', views.calculate_workloads, name='calculate-workloads'),
    path('smart-engine/estimate/', views.estimate_time, name='estimate-time'),
    path('smart-engine/duplicates/', views.detect_duplicates, name='detect-duplicates'),
    # Dependency endpoints
    path('smart-engine/dependencies/impact/', views.dependency_impact, name='dependency-impact'),
    path('smart-engine/dependencies/graph/', views.dependency_graph, name='dependency-graph'),
    path('smart-engine/dependencies/validate/', views.validate_dependencies, name='validate-dependencies'),
    path('smart-engine/dependencies/unblock/', views.unblock_dependents, name='unblock-dependents'),
]
