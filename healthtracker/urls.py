"""
URL configuration for healthtracker project.

The `urlpatterns` list routes URLs to views. For more information please see:
    https://docs.djangoproject.com/en/5.2/topics/http/urls/
"""

from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/", include("fasting.urls")),
    path("api/health/", include("health.urls")),
    path("api/user/", include("profiles.urls")),
]
