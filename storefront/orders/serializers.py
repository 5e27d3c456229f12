from rest_framework import serializers

from .models import Order, OrderItem, OrderStatus, PaymentProof, ReviewStatus


class OrderLineSerializer(serializers.Serializer):
    variant_id = serializers.IntegerField()
    quantity = serializers.IntegerField(min_value=1)


class GuestSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=150)
    contact = serializers.CharField(max_length=50, required=False, allow_blank=True, default='')
    email = serializers.EmailField(required=False, allow_blank=True, default='')


class ShippingAddressSerializer(serializers.Serializer):
    street = serializers.CharField(required=False, allow_blank=True)
    city = serializers.CharField(required=False, allow_blank=True)
    state = serializers.CharField(required=False, allow_blank=True)
    zip_region = serializers.CharField(required=False, allow_blank=True)
    country = serializers.CharField(required=False, allow_blank=True)
    phone = serializers.CharField(required=False, allow_blank=True)


class OrderCreateSerializer(serializers.Serializer):
    items = OrderLineSerializer(many=True, allow_empty=False)
    guest = GuestSerializer(required=False)
    shipping_address = ShippingAddressSerializer(required=False)
    order_type = serializers.ChoiceField(choices=Order.ORDER_TYPE_CHOICES, default='online')


class OrderItemSerializer(serializers.ModelSerializer):
    name = serializers.CharField(source='variant.product.name', read_only=True)
    size = serializers.CharField(source='variant.size', read_only=True)
    color = serializers.CharField(source='variant.color', read_only=True)
    line_total = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = OrderItem
        fields = ['variant_id', 'name', 'size', 'color', 'quantity', 'unit_price', 'line_total']


class PaymentProofSerializer(serializers.ModelSerializer):
    class Meta:
        model = PaymentProof
        fields = ['method', 'reference', 'storage_ref', 'review_status', 'reason', 'updated_at']


class OrderSerializer(serializers.ModelSerializer):
    short_id = serializers.CharField(read_only=True)
    customer = serializers.SerializerMethodField()
    items = OrderItemSerializer(many=True, read_only=True)
    subtotal = serializers.SerializerMethodField()
    payment_proof = serializers.SerializerMethodField()

    class Meta:
        model = Order
        fields = [
            'id', 'short_id', 'status', 'order_type', 'customer', 'shipping_address',
            'tracking_number', 'shipping_provider', 'items', 'subtotal', 'payment_proof',
            'created_at', 'updated_at',
        ]

    def get_customer(self, order):
        return order.customer_contact()

    def get_subtotal(self, order):
        return str(order.get_subtotal())

    def get_payment_proof(self, order):
        proof = PaymentProof.objects.filter(order=order).first()
        return PaymentProofSerializer(proof).data if proof else None


class ProofSubmitSerializer(serializers.Serializer):
    # base64 data URI; multipart uploads arrive in request.FILES instead
    image = serializers.CharField(required=False)
    method = serializers.ChoiceField(choices=['transfer', 'sinpe', 'other'])
    reference = serializers.CharField(max_length=200, required=False, allow_blank=True)


class ProofReviewSerializer(serializers.Serializer):
    decision = serializers.ChoiceField(choices=[ReviewStatus.VERIFIED.value, ReviewStatus.REJECTED.value])
    reason = serializers.CharField(max_length=500, required=False, allow_blank=True)

    def validate(self, attrs):
        if attrs['decision'] == ReviewStatus.REJECTED and not attrs.get('reason'):
            raise serializers.ValidationError({'reason': 'A reason is required to reject a payment proof'})
        return attrs


class StatusUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=OrderStatus.choices)
    tracking_number = serializers.CharField(max_length=100, required=False, allow_blank=True)
    shipping_provider = serializers.CharField(max_length=100, required=False, allow_blank=True)


class TrackingSerializer(serializers.Serializer):
    tracking_number = serializers.CharField(max_length=100)
    shipping_provider = serializers.CharField(max_length=100, required=False, allow_blank=True, default='')
