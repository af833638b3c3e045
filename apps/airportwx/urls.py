from django.urls import path
from . import views

urlpatterns = [
    path('api/weather/', views.weather, name='weather'),
]
