# riders/urls.py

from django.urls import path

from .views.info import (
    RiderProfileView,
    RiderNearbyDriversView,
    RiderRideHistoryView,
)

from .views.rides import (
    RiderQuoteView,
    RiderGeocodeView,
    RiderCreateRideRequestView,
    RiderCurrentRideView,
    RiderCancelRideView,
    RiderSelectDriverView,
    RiderRetryMatchingView,
    RiderReassignRideView,
    RiderRateRideView,
)

app_name = "riders"

urlpatterns = [
    # INFO
    path("profile/", RiderProfileView.as_view(), name="profile"),
    path("nearby-drivers/", RiderNearbyDriversView.as_view(), name="nearby-drivers"),
    path("history/", RiderRideHistoryView.as_view(), name="ride-history"),

    # BOOKING
    path("quote/", RiderQuoteView.as_view(), name="quote"),
    path("geocode/", RiderGeocodeView.as_view(), name="geocode"),

    # RIDE
    path("request/", RiderCreateRideRequestView.as_view(), name="create-ride"),
    path("current/", RiderCurrentRideView.as_view(), name="current-ride"),
    path("<str:ride_id>/cancel/", RiderCancelRideView.as_view(), name="cancel-ride"),
    path("<str:ride_id>/select-driver/", RiderSelectDriverView.as_view(), name="select-driver"),
    path("<str:ride_id>/retry/", RiderRetryMatchingView.as_view(), name="retry-matching"),
    path("<str:ride_id>/reassign/", RiderReassignRideView.as_view(), name="reassign-ride"),
    path("<str:ride_id>/rate/", RiderRateRideView.as_view(), name="rate-ride"),
]
