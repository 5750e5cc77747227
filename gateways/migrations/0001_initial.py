from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('accounts', '0001_initial'),
        ('leases', '0001_initial'),
        ('billing', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='GatewayTransaction',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('provider', models.CharField(choices=[('MPESA', 'M-Pesa STK Push'), ('PESAPAL', 'PesaPal')], max_length=20)),
                ('checkout_request_id', models.CharField(blank=True, help_text='Gateway reference, set once the charge is accepted', max_length=100, null=True, unique=True)),
                ('account_reference', models.CharField(max_length=64)),
                ('amount', models.PositiveIntegerField(help_text='Requested amount in minor currency units')),
                ('phone_or_account', models.CharField(max_length=64)),
                ('status', models.CharField(choices=[('INITIATED', 'Initiated'), ('PENDING', 'Pending'), ('COMPLETED', 'Completed'), ('FAILED', 'Failed'), ('CANCELLED', 'Cancelled'), ('TIMED_OUT', 'Timed Out')], db_index=True, default='INITIATED', max_length=20)),
                ('poll_attempts', models.PositiveIntegerField(default=0)),
                ('gateway_receipt_id', models.CharField(blank=True, max_length=100)),
                ('result_code', models.CharField(blank=True, max_length=32)),
                ('result_description', models.CharField(blank=True, max_length=255)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('resolved_at', models.DateTimeField(blank=True, null=True)),
                ('agency', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='gateway_transactions', to='accounts.agency')),
                ('lease', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='gateway_transactions', to='leases.lease')),
                ('invoice', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='gateway_transactions', to='billing.invoice')),
                ('payment', models.OneToOneField(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='gateway_transaction', to='billing.payment')),
                ('initiated_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='gateway_transactions', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'Gateway Transaction',
                'verbose_name_plural': 'Gateway Transactions',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['status', 'created_at'], name='gateway_status_created_idx'),
                    models.Index(fields=['lease', 'status'], name='gateway_lease_status_idx'),
                ],
            },
        ),
    ]
