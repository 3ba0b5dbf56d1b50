from django.urls import path
from . import views

app_name = 'fasting'

urlpatterns = [
    path('fasting/sessions', views.sessions, name='sessions'),
    path('fasting/sessions/active', views.active_session, name='active_session'),
    path('fasting/sessions/<str:session_id>', views.session_detail, name='session_detail'),
    path('fasting/sessions/<str:session_id>/end', views.end_session, name='end_session'),
    path('fasting/sessions/<str:session_id>/cancel', views.cancel_session, name='cancel_session'),
    path('fasting/stats', views.stats, name='stats'),
    path('scheduled/fasts', views.scheduled_fasts, name='scheduled_fasts'),
    path('scheduled/fasts/upcoming', views.upcoming_fasts, name='upcoming_fasts'),
    path('scheduled/fasts/<str:fast_id>', views.scheduled_fast_detail, name='scheduled_fast_detail'),
]
