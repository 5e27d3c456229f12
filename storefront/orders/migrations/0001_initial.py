import uuid

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('catalog', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Order',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('guest_name', models.CharField(blank=True, default='', max_length=150)),
                ('guest_contact', models.CharField(blank=True, default='', max_length=50)),
                ('guest_email', models.EmailField(blank=True, default='', max_length=254)),
                ('order_type', models.CharField(choices=[('online', 'Online'), ('manual_sale', 'Manual sale')], default='online', max_length=20)),
                ('status', models.CharField(choices=[('awaiting_payment', 'Awaiting payment'), ('paid', 'Paid'), ('in_production', 'In production'), ('shipped', 'Shipped'), ('completed', 'Completed'), ('cancelled', 'Cancelled'), ('archived', 'Archived')], default='awaiting_payment', max_length=20)),
                ('shipping_address', models.JSONField(blank=True, default=dict)),
                ('tracking_number', models.CharField(blank=True, default='', max_length=100)),
                ('shipping_provider', models.CharField(blank=True, default='', max_length=100)),
                ('loyalty_tokens_granted', models.BooleanField(default=False)),
                ('idempotency_key', models.CharField(blank=True, max_length=100, null=True, unique=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('user', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='orders', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['status'], name='order_status_idx'),
                    models.Index(fields=['created_at'], name='order_created_at_idx'),
                    models.Index(fields=['guest_email'], name='order_guest_email_idx'),
                ],
                'constraints': [
                    models.CheckConstraint(
                        condition=models.Q(
                            models.Q(('guest_contact', ''), ('guest_email', ''), ('guest_name', ''), ('user__isnull', False)),
                            models.Q(('user__isnull', True), models.Q(('guest_name', ''), _negated=True)),
                            _connector='OR',
                        ),
                        name='order_owner_registered_xor_guest',
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name='OrderItem',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('quantity', models.PositiveIntegerField()),
                ('unit_price', models.DecimalField(decimal_places=2, max_digits=12)),
                ('order', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='items', to='orders.order')),
                ('variant', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='order_items', to='catalog.variant')),
            ],
            options={
                'constraints': [models.CheckConstraint(condition=models.Q(('quantity__gt', 0)), name='order_item_quantity_positive')],
            },
        ),
        migrations.CreateModel(
            name='PaymentProof',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('storage_ref', models.CharField(blank=True, default='', max_length=500)),
                ('method', models.CharField(blank=True, choices=[('transfer', 'Bank transfer'), ('sinpe', 'SINPE Movil'), ('other', 'Other'), ('onvopay', 'Onvopay'), ('paypal', 'PayPal')], default='', max_length=20)),
                ('reference', models.CharField(blank=True, default='', max_length=200)),
                ('review_status', models.CharField(choices=[('pending', 'Pending'), ('verified', 'Verified'), ('rejected', 'Rejected')], default='pending', max_length=20)),
                ('reason', models.CharField(blank=True, default='', max_length=500)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('order', models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name='payment_proof', to='orders.order')),
            ],
        ),
        migrations.CreateModel(
            name='LoyaltyAccount',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('tokens', models.PositiveIntegerField(default=0)),
                ('user', models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name='loyalty_account', to=settings.AUTH_USER_MODEL)),
            ],
        ),
    ]
