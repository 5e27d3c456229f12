import logging

from celery import current_app
from django.core.cache import cache
from rest_framework import status
from rest_framework.permissions import IsAdminUser, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from storefront.wiring import get_services

from .exceptions import OrderNotFound
from .kafka_producer import get_circuit_breaker_status, get_producer
from .models import Order
from .owners import GuestOwner, RegisteredOwner
from .serializers import (
    OrderCreateSerializer,
    OrderSerializer,
    ProofReviewSerializer,
    ProofSubmitSerializer,
    StatusUpdateSerializer,
    TrackingSerializer,
)
from .services import OrderLine

logger = logging.getLogger(__name__)


def invalid(serializer):
    logger.warning(f"[API] Invalid request data: {serializer.errors}")
    return Response(
        {'message': 'Invalid data', 'code': 'invalid', 'errors': serializer.errors},
        status=status.HTTP_400_BAD_REQUEST,
    )


def load_visible_order(request, order_id):
    """Staff see every order; registered orders are visible to their owner only."""
    order = get_services().orders.get(order_id)
    user = request.user
    if order.user_id and not (user.is_staff or user.pk == order.user_id):
        raise OrderNotFound(f"Order {order_id} not found")
    return order


class OrderListCreateView(APIView):

    def get_permissions(self):
        if self.request.method == 'GET':
            return [IsAdminUser()]
        return super().get_permissions()

    def post(self, request):
        """
        Create an order for the signed-in user, or for the guest contact in
        the body. Honours ``X-Idempotency-Key``.
        """
        serializer = OrderCreateSerializer(data=request.data)
        if not serializer.is_valid():
            return invalid(serializer)
        data = serializer.validated_data

        user = request.user
        guest = data.get('guest')
        # Customers always own their orders; staff may record a sale for a walk-in guest
        if user.is_authenticated and not (user.is_staff and guest):
            if guest:
                logger.info(f"[API] Ignoring guest contact on order placed by user {user.pk}")
            owner = RegisteredOwner(user_id=user.pk)
        elif guest:
            owner = GuestOwner(name=guest['name'], contact=guest.get('contact', ''), email=guest.get('email', ''))
        else:
            return Response(
                {'message': 'Guest contact is required when not signed in', 'code': 'invalid'},
                status=status.HTTP_400_BAD_REQUEST,
            )

        if data['order_type'] == 'manual_sale' and not request.user.is_staff:
            return Response(
                {'message': 'Only staff can register manual sales', 'code': 'forbidden'},
                status=status.HTTP_403_FORBIDDEN,
            )

        order = get_services().orders.create(
            [OrderLine(variant_id=line['variant_id'], quantity=line['quantity']) for line in data['items']],
            owner,
            shipping_address=data.get('shipping_address') or {},
            order_type=data['order_type'],
            idempotency_key=request.headers.get('X-Idempotency-Key'),
        )
        return Response(
            {'message': 'Order created', 'data': OrderSerializer(order).data},
            status=status.HTTP_201_CREATED,
        )

    def get(self, request):
        try:
            page = int(request.query_params.get('page', 1))
            limit = int(request.query_params.get('limit', 10))
        except ValueError:
            return Response({'message': 'page and limit must be integers', 'code': 'invalid'},
                            status=status.HTTP_400_BAD_REQUEST)

        result = get_services().orders.list_orders(
            status=request.query_params.get('status'),
            search=request.query_params.get('search'),
            page=page,
            limit=limit,
        )
        return Response({
            'data': OrderSerializer(result['orders'], many=True).data,
            'pagination': result['pagination'],
        })


class MyOrdersView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        orders = get_services().orders.orders_for_user(request.user)
        return Response({'data': OrderSerializer(orders, many=True).data})


class OrderDetailView(APIView):

    def get(self, request, order_id):
        order = load_visible_order(request, order_id)
        return Response({'data': OrderSerializer(order).data})


class PaymentProofView(APIView):

    def post(self, request, order_id):
        serializer = ProofSubmitSerializer(data=request.data)
        if not serializer.is_valid():
            return invalid(serializer)

        image = request.FILES.get('image') or serializer.validated_data.get('image')
        if not image:
            return Response({'message': 'A payment proof image is required', 'code': 'invalid'},
                            status=status.HTTP_400_BAD_REQUEST)

        load_visible_order(request, order_id)
        try:
            get_services().proofs.submit_proof(
                order_id,
                image,
                serializer.validated_data['method'],
                reference=serializer.validated_data.get('reference'),
            )
        except (ValueError, TypeError) as e:
            return Response({'message': str(e), 'code': 'invalid'}, status=status.HTTP_400_BAD_REQUEST)

        order = get_services().orders.get(order_id)
        return Response({'message': 'Payment proof received', 'data': OrderSerializer(order).data})


class PaymentProofReviewView(APIView):
    permission_classes = [IsAdminUser]

    def post(self, request, order_id):
        serializer = ProofReviewSerializer(data=request.data)
        if not serializer.is_valid():
            return invalid(serializer)

        get_services().proofs.review_proof(
            order_id,
            serializer.validated_data['decision'],
            reason=serializer.validated_data.get('reason'),
        )
        order = get_services().orders.get(order_id)
        return Response({'message': 'Payment proof reviewed', 'data': OrderSerializer(order).data})


class OrderStatusView(APIView):
    permission_classes = [IsAdminUser]

    def patch(self, request, order_id):
        serializer = StatusUpdateSerializer(data=request.data)
        if not serializer.is_valid():
            return invalid(serializer)

        get_services().status_machine.advance(
            order_id,
            serializer.validated_data['status'],
            tracking_number=serializer.validated_data.get('tracking_number'),
            shipping_provider=serializer.validated_data.get('shipping_provider'),
        )
        order = get_services().orders.get(order_id)
        return Response({'message': 'Order status updated', 'data': OrderSerializer(order).data})


class OrderTrackingView(APIView):
    permission_classes = [IsAdminUser]

    def patch(self, request, order_id):
        serializer = TrackingSerializer(data=request.data)
        if not serializer.is_valid():
            return invalid(serializer)

        get_services().status_machine.update_tracking(
            order_id,
            serializer.validated_data['tracking_number'],
            shipping_provider=serializer.validated_data['shipping_provider'],
        )
        order = get_services().orders.get(order_id)
        return Response({'message': 'Tracking updated', 'data': OrderSerializer(order).data})


class OrderActionView(APIView):
    """PATCH /orders/<id>/cancel|archive|unarchive/"""

    permission_classes = [IsAdminUser]
    action = None

    def patch(self, request, order_id):
        getattr(get_services().orders, self.action)(order_id)
        order = get_services().orders.get(order_id)
        return Response({'message': f'Order {self.action} done', 'data': OrderSerializer(order).data})


class HealthCheckView(APIView):
    """
    Health check endpoint to monitor the service
    """

    def get(self, request):
        health_status = {
            'status': 'healthy',
            'services': {}
        }

        # Check Database
        try:
            Order.objects.exists()
            health_status['services']['database'] = 'healthy'
        except Exception as e:
            health_status['services']['database'] = f'unhealthy: {str(e)}'
            health_status['status'] = 'degraded'

        # Check Cache (webhook de-duplication)
        try:
            cache.set('health:ping', 'pong', timeout=5)
            health_status['services']['cache'] = 'healthy' if cache.get('health:ping') == 'pong' else 'unhealthy'
        except Exception as e:
            health_status['services']['cache'] = f'unhealthy: {str(e)}'
            health_status['status'] = 'degraded'

        # Check Kafka
        try:
            get_producer()
            health_status['services']['kafka'] = 'healthy'
        except Exception as e:
            health_status['services']['kafka'] = f'unhealthy: {str(e)}'
            health_status['status'] = 'degraded'
        health_status['services']['kafka_circuit'] = get_circuit_breaker_status()

        # Check Celery
        try:
            inspect = current_app.control.inspect(timeout=1)
            stats = inspect.stats()
            if stats:
                health_status['services']['celery'] = 'healthy'
            else:
                health_status['services']['celery'] = 'no workers'
                health_status['status'] = 'degraded'
        except Exception as e:
            health_status['services']['celery'] = f'unhealthy: {str(e)}'
            health_status['status'] = 'degraded'

        response_status = status.HTTP_200_OK if health_status['status'] == 'healthy' else status.HTTP_503_SERVICE_UNAVAILABLE

        return Response(health_status, status=response_status)
