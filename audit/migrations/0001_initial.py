import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='AuditLogEntry',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('action', models.CharField(choices=[
                    ('user.login', 'User login'),
                    ('user.logout', 'User logout'),
                    ('order.create', 'Order created'),
                    ('order.payment_method', 'Payment method changed'),
                    ('order.processing', 'Order processing'),
                    ('order.fulfill', 'Order fulfilled'),
                    ('order.cancel', 'Order cancelled'),
                    ('order.refund', 'Order refunded'),
                    ('payment.checkout', 'Gateway checkout started'),
                    ('payment.capture', 'Gateway payment captured'),
                    ('payment.fail', 'Gateway payment failed'),
                    ('payment.submit', 'Payment proof submitted'),
                    ('payment.approve', 'Payment proof approved'),
                    ('payment.reject', 'Payment proof rejected'),
                    ('download.request', 'Download requested'),
                    ('download.complete', 'Download completed'),
                ], db_index=True, max_length=32)),
                ('entity_type', models.CharField(db_index=True, max_length=32)),
                ('entity_id', models.CharField(blank=True, db_index=True, default='', max_length=64)),
                ('metadata', models.JSONField(blank=True, null=True)),
                ('ip_address', models.GenericIPAddressField(blank=True, null=True)),
                ('user_agent', models.CharField(blank=True, default='', max_length=256)),
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True)),
                ('actor', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='audit_entries', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ('-created_at', '-id'),
            },
        ),
    ]
