from django.urls import path
from .views import chat_stream, realtime_stream, latest_events, stream_stats, stream_test

urlpatterns = [
    path('chat/stream/', chat_stream, name='chat-stream'),
    path('realtime/', realtime_stream, name='realtime-stream'),
    path('realtime/stats/', stream_stats, name='realtime-stats'),
    path('realtime/test/', stream_test, name='realtime-test'),
    path('events/latest/', latest_events, name='events-latest'),
]
