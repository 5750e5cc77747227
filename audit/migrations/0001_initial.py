from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('accounts', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='AuditLog',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('action', models.CharField(choices=[('CREATE', 'Create'), ('UPDATE', 'Update'), ('TERMINATE', 'Terminate'), ('GENERATE_INVOICE', 'Generate Invoice'), ('RECORD_PAYMENT', 'Record Payment'), ('APPLY_CREDIT', 'Apply Credit'), ('REVERSE_PAYMENT', 'Reverse Payment'), ('INITIATE_PAYMENT', 'Initiate Payment'), ('GATEWAY_RESULT', 'Gateway Result'), ('RAISE_PENALTY', 'Raise Penalty'), ('WAIVE_PENALTY', 'Waive Penalty'), ('SETTLE_PENALTY', 'Settle Penalty')], db_index=True, max_length=20)),
                ('resource_type', models.CharField(choices=[('Lease', 'Lease'), ('Invoice', 'Invoice'), ('Payment', 'Payment'), ('GatewayTransaction', 'Gateway Transaction'), ('Penalty', 'Penalty')], db_index=True, max_length=50)),
                ('resource_id', models.IntegerField(blank=True, db_index=True, null=True)),
                ('description', models.TextField()),
                ('metadata', models.JSONField(blank=True, default=dict)),
                ('timestamp', models.DateTimeField(auto_now_add=True, db_index=True)),
                ('agency', models.ForeignKey(help_text='Agency this action belongs to', on_delete=django.db.models.deletion.CASCADE, related_name='audit_logs', to='accounts.agency')),
                ('user', models.ForeignKey(blank=True, help_text='User who performed the action, empty for system actions', null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='audit_logs', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'Audit Log',
                'verbose_name_plural': 'Audit Logs',
                'ordering': ['-timestamp'],
                'indexes': [
                    models.Index(fields=['agency', '-timestamp'], name='audit_agency_time_idx'),
                    models.Index(fields=['resource_type', 'resource_id'], name='audit_resource_idx'),
                ],
            },
        ),
    ]
