from django.urls import path, include
from rest_framework.routers import DefaultRouter
from rest_framework_simplejwt.views import TokenRefreshView

from .views import (
    CustomLoginView,
    CreateHeadAdminView,
    UserProfileView,
    ChangePasswordView,
    UserViewSet,
    StudentImportView,
    StudentListView,
)

# Create a router for ViewSets
router = DefaultRouter()
router.register(r'users', UserViewSet, basename='users')

auth_urlpatterns = [
    path('login/', CustomLoginView.as_view(), name='login'),
    path('refresh/', TokenRefreshView.as_view(), name='token-refresh'),
    path('create-headadmin/', CreateHeadAdminView.as_view(), name='create-headadmin'),
    path('profile/', UserProfileView.as_view(), name='user-profile'),
    path('change-password/', ChangePasswordView.as_view(), name='change-password'),
]

admin_urlpatterns = [
    # Must precede the router so 'import' is not read as a user id
    path('users/import/', StudentImportView.as_view(), name='users-import'),
    path('students/', StudentListView.as_view(), name='school-students'),
    path('', include(router.urls)),
]
