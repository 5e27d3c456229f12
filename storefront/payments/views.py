import logging

from rest_framework import serializers, status
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from storefront.wiring import get_services

from .exceptions import UnverifiedWebhook

logger = logging.getLogger(__name__)


class InitiatePaymentSerializer(serializers.Serializer):
    order_id = serializers.UUIDField()
    method = serializers.CharField(max_length=20)


class InitiatePaymentView(APIView):

    def post(self, request):
        serializer = InitiatePaymentSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(
                {'message': 'Invalid data', 'code': 'invalid', 'errors': serializer.errors},
                status=status.HTTP_400_BAD_REQUEST,
            )

        result = get_services().payments.initiate_payment(
            str(serializer.validated_data['order_id']),
            serializer.validated_data['method'],
        )
        return Response(result.to_dict(), status=status.HTTP_200_OK if result.success else status.HTTP_502_BAD_GATEWAY)


class WebhookView(APIView):
    """Provider callbacks: no session auth, so no CSRF."""

    authentication_classes = []
    permission_classes = [AllowAny]

    def post(self, request, gateway):
        payments = get_services().payments
        provider = payments.gateways.get(gateway)
        signature = provider.signature_from_headers(request.headers) if provider else None

        try:
            result = payments.handle_webhook(gateway, request.data, signature)
        except UnverifiedWebhook:
            return Response({'received': False, 'status': 'rejected'}, status=status.HTTP_401_UNAUTHORIZED)

        return Response(result, status=status.HTTP_200_OK)
