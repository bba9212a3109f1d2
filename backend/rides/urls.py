from django.urls import path
from . import views

app_name = 'rides'

urlpatterns = [
    path('<str:ride_id>/', views.get_ride_detail, name='ride-detail'),

    # Driver Ride Actions
    path('handle/<str:ride_id>/accept/', views.accept_ride, name='accept-ride'),
    path('handle/<str:ride_id>/decline/', views.decline_ride, name='decline-ride'),
    path('handle/<str:ride_id>/start/', views.start_ride, name='start-ride'),
    path('handle/<str:ride_id>/complete/', views.complete_ride, name='complete-ride'),
    path('handle/<str:ride_id>/driver-cancel/', views.driver_cancel_ride, name='driver-cancel-ride'),
]
