from django.urls import path, include
from rest_framework.routers import DefaultRouter
from .views import DevTaskViewSet, SprintViewSet

router = DefaultRouter()
router.register(r'tasks', DevTaskViewSet, basename='task')
router.register(r'sprints', SprintViewSet, basename='sprint')

app_name = 'tasks'

urlpatterns = [
    path('', include(router.urls)),
]
