from django.urls import path

from . import views

app_name = 'chat'

urlpatterns = [
    path('chats/', views.ChatListCreateView.as_view(), name='chat-list'),
    path('find-user/', views.find_user, name='find-user'),
    path('chats/<uuid:chat_id>/messages/', views.ChatMessagesView.as_view(), name='chat-messages'),
    path('chats/<uuid:chat_id>/read/', views.mark_read, name='chat-read'),
    path('chats/<uuid:chat_id>/settings/', views.chat_settings, name='chat-settings'),
    path('messages/<uuid:message_id>/', views.MessageDetailView.as_view(), name='message-detail'),
    path('messages/<uuid:message_id>/reactions/', views.react, name='message-reactions'),
    path('messages/<uuid:message_id>/forward/', views.forward, name='message-forward'),
]
