import logging

from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import Count
from django.shortcuts import get_object_or_404
from django.utils import timezone
from rest_framework import status, views
from rest_framework.response import Response

from cores.context import AuthContext
from cores.permissions import IsHeadAdmin, IsSchoolAdmin, IsSchoolMember
from .models import Conversation, Message
from .serializers import (
    ConversationSerializer, ConversationDetailSerializer, MessageSerializer,
    StartConversationSerializer, SendMessageSerializer, BroadcastSerializer,
)

logger = logging.getLogger(__name__)

User = get_user_model()


def reachable_users(ctx):
    """Who the caller may message: their own school, plus the head admin; the head admin reaches everyone."""
    queryset = User.objects.filter(is_active=True).exclude(pk=ctx.user.pk)
    if ctx.role == User.Role.HEADADMIN:
        return queryset
    return queryset.filter(school_id=ctx.school_id) | queryset.filter(role=User.Role.HEADADMIN)


def user_conversation(ctx, pk):
    return get_object_or_404(Conversation, pk=pk, participants=ctx.user)


class ConversationListView(views.APIView):
    permission_classes = [IsSchoolMember | IsHeadAdmin]

    def get(self, request):
        ctx = AuthContext.from_request(request)
        conversations = Conversation.objects.filter(participants=ctx.user).prefetch_related('participants')
        return Response({
            "success": True,
            "data": ConversationSerializer(conversations, many=True, context={'request': request}).data,
        })

    def post(self, request):
        """Open a conversation; an existing one-to-one thread with the same person is reused."""
        ctx = AuthContext.from_request(request)
        serializer = StartConversationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        ids = set(data['participant_ids']) - {ctx.user.pk}
        recipients = list(reachable_users(ctx).filter(pk__in=ids).distinct())
        if not ids or len(recipients) != len(ids):
            return Response({"success": False, "error": "One or more recipients cannot be messaged"},
                            status=status.HTTP_400_BAD_REQUEST)

        conversation = None
        if len(recipients) == 1:
            # Count members before the participant joins narrow the rows
            conversation = (Conversation.objects
                            .filter(is_broadcast=False)
                            .annotate(size=Count('participants', distinct=True))
                            .filter(size=2)
                            .filter(participants=ctx.user)
                            .filter(participants=recipients[0])
                            .first())

        created = conversation is None
        with transaction.atomic():
            if created:
                conversation = Conversation.objects.create(
                    school=ctx.school or recipients[0].school,
                    subject=data['subject'],
                    created_by=ctx.user,
                )
                conversation.participants.add(ctx.user, *recipients)
            if data['content'].strip():
                Message.objects.create(conversation=conversation, sender=ctx.user, content=data['content'].strip())

        return Response(
            {"success": True,
             "data": ConversationDetailSerializer(conversation, context={'request': request}).data},
            status=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
        )


class ConversationDetailView(views.APIView):
    permission_classes = [IsSchoolMember | IsHeadAdmin]

    def get(self, request, pk):
        ctx = AuthContext.from_request(request)
        conversation = user_conversation(ctx, pk)
        return Response({
            "success": True,
            "data": ConversationDetailSerializer(conversation, context={'request': request}).data,
        })


class ConversationReadView(views.APIView):
    permission_classes = [IsSchoolMember | IsHeadAdmin]

    def post(self, request, pk):
        ctx = AuthContext.from_request(request)
        conversation = user_conversation(ctx, pk)
        unread = list(conversation.messages.exclude(sender=ctx.user).exclude(read_by=ctx.user))
        for message in unread:
            message.read_by.add(ctx.user)
        return Response({"success": True, "marked": len(unread)})


class SendMessageView(views.APIView):
    permission_classes = [IsSchoolMember | IsHeadAdmin]

    def post(self, request):
        ctx = AuthContext.from_request(request)
        serializer = SendMessageSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        conversation = user_conversation(ctx, data['conversation_id'])
        message = Message.objects.create(
            conversation=conversation,
            sender=ctx.user,
            content=data['content'],
            priority=data['priority'],
        )
        # Bump the thread to the top of everyone's list
        Conversation.objects.filter(pk=conversation.pk).update(updated_at=timezone.now())
        return Response({"success": True, "message": MessageSerializer(message, context={'request': request}).data},
                        status=status.HTTP_201_CREATED)


class BroadcastView(views.APIView):
    """
    School admins broadcast to their school (optionally narrowed by role);
    the head admin broadcasts to the admins of every school.
    """
    permission_classes = [IsSchoolAdmin | IsHeadAdmin]

    def post(self, request):
        ctx = AuthContext.from_request(request)
        serializer = BroadcastSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        recipients = reachable_users(ctx).exclude(role=User.Role.HEADADMIN)
        if ctx.role == User.Role.HEADADMIN and not data['target_roles']:
            recipients = recipients.filter(role__in=[User.Role.ADMIN, User.Role.DIRECTOR])
        if data['target_roles']:
            recipients = recipients.filter(role__in=data['target_roles'])
        recipients = list(recipients.distinct())
        if not recipients:
            return Response({"success": False, "error": "No users match the selected roles"},
                            status=status.HTTP_400_BAD_REQUEST)

        with transaction.atomic():
            conversation = Conversation.objects.create(
                school=ctx.school,
                subject=data['subject'],
                is_broadcast=True,
                created_by=ctx.user,
            )
            conversation.participants.add(ctx.user, *recipients)
            Message.objects.create(
                conversation=conversation,
                sender=ctx.user,
                content=data['content'].strip(),
                priority=data['priority'],
            )

        logger.info("User %s broadcast '%s' to %d users", ctx.user.pk, data['subject'], len(recipients))
        return Response({"success": True, "conversation": conversation.pk, "count": len(recipients)},
                        status=status.HTTP_201_CREATED)
