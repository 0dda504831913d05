# Generated manually
import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('workspaces', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='InboxChannel',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('chatwoot_account_id', models.IntegerField()),
                ('chatwoot_inbox_id', models.IntegerField(db_index=True)),
                ('inbox_name', models.CharField(blank=True, max_length=255, null=True)),
                ('channel_type', models.CharField(choices=[('whatsapp', 'WhatsApp'), ('web', 'Website'), ('email', 'Email'), ('sms', 'SMS'), ('api', 'API'), ('other', 'Other')], default='whatsapp', max_length=20)),
                ('is_active', models.BooleanField(default=True)),
                ('metadata', models.JSONField(blank=True, default=dict)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='inbox_channels', to=settings.AUTH_USER_MODEL)),
                ('workspace', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='inbox_channels', to='workspaces.workspace')),
            ],
            options={
                'db_table': 'inbox_channels',
                'ordering': ['-created_at'],
                'unique_together': {('user', 'workspace', 'chatwoot_inbox_id')},
            },
        ),
        migrations.CreateModel(
            name='ChatAssignment',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('conversation_id', models.IntegerField(db_index=True)),
                ('status', models.CharField(choices=[('active', 'Active'), ('completed', 'Completed'), ('transferred', 'Transferred')], default='active', max_length=20)),
                ('notes', models.TextField(blank=True, null=True)),
                ('assigned_at', models.DateTimeField(auto_now_add=True)),
                ('unassigned_at', models.DateTimeField(blank=True, null=True)),
                ('agent', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='chat_assignments', to=settings.AUTH_USER_MODEL)),
                ('assigned_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='chat_assignments_made', to=settings.AUTH_USER_MODEL)),
                ('workspace', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='chat_assignments', to='workspaces.workspace')),
            ],
            options={
                'db_table': 'chat_assignments',
                'ordering': ['-assigned_at', '-id'],
                'indexes': [models.Index(fields=['workspace', 'conversation_id', 'status'], name='idx_assignment_ws_conv')],
            },
        ),
    ]
