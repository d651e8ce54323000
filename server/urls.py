"""Main URL mapping configuration file.

All API endpoints live under ``/api/``.
"""

from django.urls import include, path

urlpatterns = [
    path('api/', include('server.apps.disk_images.urls')),
]
