import django.core.validators
from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('accounts', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='Lease',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('property_ref', models.CharField(db_index=True, max_length=64)),
                ('tenant_ref', models.CharField(db_index=True, max_length=64)),
                ('start_date', models.DateField()),
                ('end_date', models.DateField(blank=True, null=True)),
                ('rent_amount', models.PositiveIntegerField(help_text='Monthly rent in minor currency units', validators=[django.core.validators.MinValueValidator(1)])),
                ('payment_day_of_month', models.PositiveSmallIntegerField(help_text="Day rent is due; clamped to the last day of shorter months", validators=[django.core.validators.MinValueValidator(1), django.core.validators.MaxValueValidator(31)])),
                ('notes', models.TextField(blank=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('agency', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='leases', to='accounts.agency')),
            ],
            options={
                'verbose_name': 'Lease',
                'verbose_name_plural': 'Leases',
                'ordering': ['-start_date'],
                'indexes': [
                    models.Index(fields=['agency', 'start_date'], name='lease_agency_start_idx'),
                    models.Index(fields=['agency', 'end_date'], name='lease_agency_end_idx'),
                ],
            },
        ),
    ]
