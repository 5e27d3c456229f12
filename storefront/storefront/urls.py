from django.contrib import admin
from django.urls import path

from orders.views import (
    HealthCheckView,
    MyOrdersView,
    OrderActionView,
    OrderDetailView,
    OrderListCreateView,
    OrderStatusView,
    OrderTrackingView,
    PaymentProofReviewView,
    PaymentProofView,
)
from payments.views import InitiatePaymentView, WebhookView

urlpatterns = [
    path('admin/', admin.site.urls),
    path('orders/', OrderListCreateView.as_view(), name='order-list'),
    path('orders/mine/', MyOrdersView.as_view(), name='order-mine'),
    path('orders/<uuid:order_id>/', OrderDetailView.as_view(), name='order-detail'),
    path('orders/<uuid:order_id>/payment-proof/', PaymentProofView.as_view(), name='order-payment-proof'),
    path('orders/<uuid:order_id>/payment-proof/review/', PaymentProofReviewView.as_view(), name='order-payment-proof-review'),
    path('orders/<uuid:order_id>/status/', OrderStatusView.as_view(), name='order-status'),
    path('orders/<uuid:order_id>/tracking/', OrderTrackingView.as_view(), name='order-tracking'),
    path('orders/<uuid:order_id>/cancel/', OrderActionView.as_view(action='cancel'), name='order-cancel'),
    path('orders/<uuid:order_id>/archive/', OrderActionView.as_view(action='archive'), name='order-archive'),
    path('orders/<uuid:order_id>/unarchive/', OrderActionView.as_view(action='unarchive'), name='order-unarchive'),
    path('payments/initiate/', InitiatePaymentView.as_view(), name='payment-initiate'),
    path('payments/webhook/<str:gateway>/', WebhookView.as_view(), name='payment-webhook'),
    path('health/', HealthCheckView.as_view(), name='health-check'),
]
