from django.urls import path

from .views import (
    ConversationListView, ConversationDetailView, ConversationReadView,
    SendMessageView, BroadcastView,
)

urlpatterns = [
    path('conversations/', ConversationListView.as_view(), name='conversations'),
    path('conversations/<int:pk>/', ConversationDetailView.as_view(), name='conversation-detail'),
    path('conversations/<int:pk>/read/', ConversationReadView.as_view(), name='conversation-read'),
    path('send/', SendMessageView.as_view(), name='send-message'),
    path('broadcast/', BroadcastView.as_view(), name='broadcast'),
]
