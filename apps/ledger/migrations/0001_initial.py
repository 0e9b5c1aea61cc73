# Generated manually for the ledger app

import uuid
from decimal import Decimal
from django.core.validators import MinValueValidator
from django.db import migrations, models
import django.db.models.deletion

import apps.ledger.models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='Bill',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('payer_name', models.CharField(max_length=100)),
                ('payment_handle', models.CharField(max_length=50)),
                ('image_url', models.CharField(blank=True, max_length=500)),
                ('restaurant_name', models.CharField(blank=True, max_length=200, null=True)),
                ('total_amount', models.DecimalField(blank=True, decimal_places=2, max_digits=10, null=True)),
                ('share_token', models.UUIDField(default=uuid.uuid4, editable=False, unique=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'db_table': 'bills',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['share_token'], name='bills_share_t_4c1f2e_idx'),
                    models.Index(fields=['created_at'], name='bills_created_9a0d17_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='LineItem',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('name', models.CharField(max_length=200)),
                ('quantity', models.DecimalField(decimal_places=2, max_digits=8, validators=[MinValueValidator(Decimal('0.25')), apps.ledger.models.validate_quantity_step])),
                ('price_per_unit', models.DecimalField(decimal_places=2, max_digits=10, validators=[MinValueValidator(Decimal('0.00'))])),
                ('total_price', models.DecimalField(decimal_places=2, editable=False, max_digits=12)),
                ('position', models.PositiveIntegerField(default=0)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('bill', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='items', to='ledger.bill')),
            ],
            options={
                'db_table': 'line_items',
                'ordering': ['position', 'created_at'],
                'indexes': [
                    models.Index(fields=['bill', 'position'], name='line_items_bill_id_5e7b3a_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Claim',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('guest_name', models.CharField(max_length=100)),
                ('session_id', models.UUIDField(db_index=True)),
                ('item_quantities', models.JSONField(blank=True, default=dict)),
                ('tip_amount', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=10, validators=[MinValueValidator(Decimal('0.00'))])),
                ('status', models.CharField(choices=[('SELECTING', 'Selecting'), ('PAID', 'Paid')], default='SELECTING', max_length=20)),
                ('payment_method', models.CharField(blank=True, choices=[('PAYPAL', 'PayPal'), ('CASH', 'Cash')], max_length=20, null=True)),
                ('submitted_at', models.DateTimeField(blank=True, null=True)),
                ('received', models.BooleanField(default=False)),
                ('received_at', models.DateTimeField(blank=True, null=True)),
                ('expires_at', models.DateTimeField()),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('bill', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='claims', to='ledger.bill')),
            ],
            options={
                'db_table': 'claims',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['bill', 'status'], name='claims_bill_id_2b8c41_idx'),
                    models.Index(fields=['bill', 'session_id', 'status'], name='claims_bill_id_7d3e90_idx'),
                    models.Index(fields=['status', 'expires_at'], name='claims_status_f61a28_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(condition=models.Q(('status', 'SELECTING')), fields=('bill', 'session_id'), name='one_selecting_claim_per_session'),
                ],
            },
        ),
    ]
