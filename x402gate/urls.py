from django.urls import path

from x402gate.views import PaymentHistoryView, StatsView, priced_resource

app_name = 'x402gate'

urlpatterns = [
    path('api/stats', StatsView.as_view(), name='stats'),
    path('api/history/<str:address>', PaymentHistoryView.as_view(), name='history'),
    path('api/<slug:service>', priced_resource, name='resource'),
]
