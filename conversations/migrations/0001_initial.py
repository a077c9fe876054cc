import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='Conversation',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('conversation_id', models.CharField(max_length=201, unique=True)),
                ('last_message', models.TextField(blank=True, default='')),
                ('last_message_at', models.DateTimeField(blank=True, null=True)),
                ('last_updated', models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ('messages_count', models.PositiveIntegerField(default=0)),
                ('is_blocked', models.BooleanField(default=False)),
                ('blocked_by', models.CharField(blank=True, max_length=100, null=True)),
                ('blocked_by_reference', models.CharField(blank=True, choices=[('User', 'User'), ('Vendor', 'Vendor')], max_length=10, null=True)),
                ('is_reported', models.BooleanField(default=False)),
                ('reported_by', models.CharField(blank=True, max_length=100, null=True)),
                ('reported_by_reference', models.CharField(blank=True, choices=[('User', 'User'), ('Vendor', 'Vendor')], max_length=10, null=True)),
                ('report_reason', models.TextField(blank=True, default='')),
                ('context', models.JSONField(blank=True, default=dict)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'db_table': 'conversations_conversation',
                'ordering': ['-last_updated', '-id'],
            },
        ),
        migrations.CreateModel(
            name='ConversationParticipant',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('identity_id', models.CharField(db_index=True, max_length=100)),
                ('role', models.CharField(choices=[('user', 'User'), ('vendor', 'Vendor')], max_length=10)),
                ('entity_kind', models.CharField(choices=[('User', 'User'), ('Vendor', 'Vendor')], max_length=10)),
                ('unread_count', models.PositiveIntegerField(default=0)),
                ('last_seen_at', models.DateTimeField(blank=True, null=True)),
                ('conversation', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='participants', to='conversations.conversation')),
            ],
            options={
                'db_table': 'conversations_participant',
                'ordering': ['id'],
            },
        ),
        migrations.AddConstraint(
            model_name='conversationparticipant',
            constraint=models.UniqueConstraint(fields=('conversation', 'identity_id'), name='unique_participant_identity'),
        ),
        migrations.AddConstraint(
            model_name='conversationparticipant',
            constraint=models.UniqueConstraint(fields=('conversation', 'role'), name='unique_participant_role'),
        ),
    ]
