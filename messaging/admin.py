from django.contrib import admin

from .models import Conversation, Message


class MessageInline(admin.TabularInline):
    model = Message
    extra = 0
    exclude = ('read_by',)


@admin.register(Conversation)
class ConversationAdmin(admin.ModelAdmin):
    list_display = ('__str__', 'school', 'is_broadcast', 'updated_at')
    list_filter = ('is_broadcast',)
    inlines = [MessageInline]
