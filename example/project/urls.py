"""
URL configuration for Reservoir example project.
"""

from django.contrib import admin
from django.urls import include, path

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/", include("reservoir.api.urls")),
]
