from django.contrib import admin

from .models import Chat, ChatParticipant, Message, MessageReaction


class ChatParticipantInline(admin.TabularInline):
    model = ChatParticipant
    extra = 0
    raw_id_fields = ['user']
    readonly_fields = ['joined_at', 'last_read_at']


@admin.register(Chat)
class ChatAdmin(admin.ModelAdmin):
    list_display = ['__str__', 'type', 'course', 'created_by', 'participant_count', 'updated_at']
    list_filter = ['type', 'created_at']
    search_fields = ['name', 'participants__user__email']
    raw_id_fields = ['created_by', 'course']
    inlines = [ChatParticipantInline]

    def participant_count(self, obj):
        return obj.participants.count()
    participant_count.short_description = 'Participants'


@admin.register(Message)
class MessageAdmin(admin.ModelAdmin):
    list_display = ['sender', 'chat', 'type', 'short_content', 'is_edited', 'is_deleted', 'created_at']
    list_filter = ['type', 'is_deleted', 'created_at']
    search_fields = ['content', 'sender__email']
    raw_id_fields = ['chat', 'sender', 'reply_to', 'forwarded_from']
    date_hierarchy = 'created_at'

    def short_content(self, obj):
        return obj.content[:60]
    short_content.short_description = 'Content'


@admin.register(MessageReaction)
class MessageReactionAdmin(admin.ModelAdmin):
    list_display = ['user', 'emoji', 'message', 'created_at']
    raw_id_fields = ['user', 'message']
