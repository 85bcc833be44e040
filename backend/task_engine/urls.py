"""
URL configuration for task_engine project.
"""

from django.urls import path, include
from django.http import JsonResponse
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView, SpectacularSwaggerView


def home_view(request):
    """Root endpoint with API information."""
    return JsonResponse({
        'message': 'Welcome to the Task Intelligence Engine API',
        'version': '1.0.0',
        'endpoints': {
            'API Root': '/api/',
            'Configuration': 'GET /api/smart-engine/config/',
            'Priority': 'POST /api/smart-engine/priority/',
            'Workload': 'POST /api/smart-engine/workload/',
            'Estimate': 'POST /api/smart-engine/estimate/',
            'Dependencies': 'POST /api/smart-engine/dependencies/validate/',
            'API Documentation': '/api/docs/',
            'OpenAPI Schema': '/api/schema/',
        }
    })


urlpatterns = [
    path('', home_view, name='home'),
    # OpenAPI/Swagger Documentation
    path('api/schema/', SpectacularAPIView.as_view(), name='schema'),
    path('api/docs/', SpectacularSwaggerView.as_view(url_name='schema'), name='swagger-ui'),
    path('api/redoc/', SpectacularRedocView.as_view(url_name='schema'), name='redoc'),
    path('api/', include('smart_engine.urls')),
]
