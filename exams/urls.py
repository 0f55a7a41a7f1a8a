from django.urls import path, include
from rest_framework.routers import DefaultRouter
from .views import OnlineTestViewSet, QuestionViewSet, SubjectViewSet

teacher_router = DefaultRouter()
teacher_router.register(r'tests', OnlineTestViewSet, basename='teacher-tests')
teacher_router.register(r'questions', QuestionViewSet, basename='questions')

admin_router = DefaultRouter()
admin_router.register(r'subjects', SubjectViewSet, basename='subjects')

teacher_urlpatterns = [
    path('', include(teacher_router.urls)),
]

admin_urlpatterns = [
    path('', include(admin_router.urls)),
]
