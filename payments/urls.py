from django.urls import path
from .views import CheckoutView, FinalizeBalanceView, StripeWebhookView

urlpatterns = [
    path('checkout/', CheckoutView.as_view(), name='checkout'),
    path('cron/finalize-balance/', FinalizeBalanceView.as_view(), name='cron-finalize-balance'),
    path('webhooks/stripe/', StripeWebhookView.as_view(), name='stripe-webhook'),
]
