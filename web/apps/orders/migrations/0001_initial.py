import uuid

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="OrderModel",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("internal_id", models.BigIntegerField(editable=False, null=True, unique=True)),
                ("listing_id", models.CharField(db_index=True, max_length=64)),
                ("buyer_id", models.CharField(db_index=True, max_length=64)),
                ("seller_id", models.CharField(db_index=True, max_length=64)),
                ("quantity", models.PositiveIntegerField(default=1)),
                ("unit_price", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("amount", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("shipping_cost", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("total_amount", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("currency", models.CharField(default="INR", max_length=3)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "pending"),
                            ("confirmed", "confirmed"),
                            ("processing", "processing"),
                            ("shipped", "shipped"),
                            ("out_for_delivery", "out_for_delivery"),
                            ("delivered", "delivered"),
                            ("cancelled", "cancelled"),
                            ("refunded", "refunded"),
                        ],
                        default="pending",
                        max_length=32,
                    ),
                ),
                (
                    "payment_status",
                    models.CharField(
                        choices=[
                            ("pending", "pending"),
                            ("paid", "paid"),
                            ("partial", "partial"),
                            ("failed", "failed"),
                            ("refunded", "refunded"),
                        ],
                        default="pending",
                        max_length=16,
                    ),
                ),
                ("advance_amount", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("captured_amount", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("intent_gateway_order_id", models.CharField(blank=True, db_index=True, max_length=64, null=True)),
                ("intent_amount", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ("payment_details", models.JSONField(blank=True, null=True)),
                ("tracking_info", models.JSONField(blank=True, null=True)),
                ("cancellation_reason", models.TextField(blank=True, null=True)),
                ("refund_amount", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                (
                    "refund_status",
                    models.CharField(
                        blank=True,
                        choices=[("pending", "pending"), ("processed", "processed"), ("failed", "failed")],
                        max_length=16,
                        null=True,
                    ),
                ),
                ("refund_ids", models.JSONField(blank=True, default=list)),
                ("notes", models.TextField(blank=True, default="")),
                ("version", models.PositiveIntegerField(default=0)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "db_table": "orders",
                "ordering": ["-created_at"],
                "indexes": [models.Index(fields=["status", "payment_status"], name="orders_status_idx")],
            },
        ),
        migrations.CreateModel(
            name="OrderPaymentModel",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("gateway_payment_id", models.CharField(max_length=64, unique=True)),
                ("gateway_order_id", models.CharField(blank=True, default="", max_length=64)),
                ("amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("refunded_amount", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("kind", models.CharField(default="full", max_length=16)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payments",
                        to="orders.ordermodel",
                    ),
                ),
            ],
            options={"db_table": "order_payments", "ordering": ["created_at", "id"]},
        ),
        migrations.CreateModel(
            name="OrderTransitionModel",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("from_status", models.CharField(blank=True, default="", max_length=32)),
                ("to_status", models.CharField(max_length=32)),
                ("actor_id", models.CharField(max_length=64)),
                ("actor_role", models.CharField(max_length=16)),
                ("reason", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="transitions",
                        to="orders.ordermodel",
                    ),
                ),
            ],
            options={"db_table": "order_transitions", "ordering": ["created_at", "id"]},
        ),
        migrations.CreateModel(
            name="TransportJobModel",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("transporter_id", models.CharField(db_index=True, max_length=64)),
                ("quote", models.DecimalField(decimal_places=2, max_digits=12)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("assigned", "assigned"),
                            ("picked", "picked"),
                            ("in-transit", "in-transit"),
                            ("delivered", "delivered"),
                        ],
                        default="assigned",
                        max_length=16,
                    ),
                ),
                ("tracking", models.CharField(blank=True, default="", max_length=255)),
                ("is_active", models.BooleanField(default=True)),
                ("version", models.PositiveIntegerField(default=0)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="transport_jobs",
                        to="orders.ordermodel",
                    ),
                ),
            ],
            options={
                "db_table": "transport_jobs",
                "ordering": ["-created_at"],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("is_active", True)),
                        fields=("order",),
                        name="uq_active_transport_job_per_order",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="IdempotencyKey",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("key", models.CharField(max_length=200, unique=True)),
                ("request_hash", models.CharField(max_length=64)),
                ("response_status", models.PositiveSmallIntegerField(default=0)),
                ("response_body", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "order",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        to="orders.ordermodel",
                    ),
                ),
            ],
            options={"db_table": "idempotency_keys"},
        ),
    ]
