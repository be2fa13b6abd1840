from django.urls import path

from . import views as my_views

urlpatterns = [
    # Gig endpoints
    path('gigs/', my_views.ListCreateGigAPIView.as_view(), name='gig-list-create'),
    path('gigs/<int:id>/', my_views.RetrieveUpdateGigAPIView.as_view(), name='gig-retrieve-update'),

    # Order endpoints
    path('orders/', my_views.ListOrderAPIView.as_view(), name='order-list'),
    path('orders/<int:id>/', my_views.RetrieveOrderAPIView.as_view(), name='order-detail'),
    path('orders/<int:id>/status/', my_views.UpdateOrderStatusAPIView.as_view(), name='order-status'),
]
