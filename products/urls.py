from django.urls import path, include
from rest_framework.routers import DefaultRouter
from .views import ProductViewSet, EpicViewSet

router = DefaultRouter()
router.register(r'products', ProductViewSet, basename='product')
router.register(r'epics', EpicViewSet, basename='epic')

app_name = 'products'

urlpatterns = [
    path('', include(router.urls)),
]
