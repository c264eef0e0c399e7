from django.urls import path

from .views import (
    MaterialCheckView,
    OrderByBarcodeView,
    OrderCreateView,
    OrderDetailView,
    OrderImportWebhookView,
    OrderStepView,
    SampleTypeWebhookView,
    TestWebhookView,
)

urlpatterns = [
    path('orders/', OrderCreateView.as_view(), name='order-create'),
    path('orders/by-barcode/', OrderByBarcodeView.as_view(), name='order-by-barcode'),
    path('orders/<int:order_id>/', OrderDetailView.as_view(), name='order-detail'),
    path('orders/<int:order_id>/steps/<str:step>/', OrderStepView.as_view(), name='order-step'),
    path('materials/check/', MaterialCheckView.as_view(), name='material-check'),
    path('webhooks/orders/import/', OrderImportWebhookView.as_view(), name='webhook-order-import'),
    path('webhooks/sample-types/<str:server_id>/', SampleTypeWebhookView.as_view(), name='webhook-sample-type'),
    path('webhooks/tests/<str:server_id>/', TestWebhookView.as_view(), name='webhook-test'),
]
