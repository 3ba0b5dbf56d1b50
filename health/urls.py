from django.urls import path
from . import views

app_name = 'health'

urlpatterns = [
    path('weight', views.weigh_ins, name='weigh_ins'),
    path('weight/<str:weigh_in_id>', views.weigh_in_detail, name='weigh_in_detail'),
    path('metrics', views.metrics, name='metrics'),
]
