# Generated manually
from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ('workspaces', '0002_agentinvitation'),
    ]

    operations = [
        migrations.AddField(
            model_name='agentprofile',
            name='avatar_url',
            field=models.URLField(blank=True, max_length=500, null=True),
        ),
        migrations.AddField(
            model_name='agentprofile',
            name='working_hours',
            field=models.JSONField(blank=True, default=dict),
        ),
        migrations.AddField(
            model_name='agentprofile',
            name='metadata',
            field=models.JSONField(blank=True, default=dict),
        ),
    ]
