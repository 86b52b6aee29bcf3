from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='AuditEvent',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('actor', models.CharField(blank=True, max_length=150)),
                ('action', models.CharField(max_length=64)),
                ('object_type', models.CharField(blank=True, max_length=64, null=True)),
                ('object_id', models.CharField(blank=True, max_length=255, null=True)),
                ('detail', models.JSONField(blank=True, default=dict)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
            options={
                'indexes': [
                    models.Index(fields=['action', 'created_at'], name='audit_action_ts_idx'),
                    models.Index(fields=['object_type', 'object_id', 'created_at'], name='audit_object_ts_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='QueuePartition',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('hospital', models.CharField(max_length=128)),
                ('department', models.CharField(max_length=128)),
                ('version', models.PositiveBigIntegerField(default=0)),
                ('last_ranked_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
            options={
                'constraints': [
                    models.UniqueConstraint(fields=('hospital', 'department'), name='uniq_queue_partition'),
                ],
            },
        ),
        migrations.CreateModel(
            name='QueueEntry',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('ticket_id', models.CharField(max_length=32, unique=True)),
                ('hospital', models.CharField(max_length=128)),
                ('department', models.CharField(max_length=128)),
                ('patient_ref', models.CharField(db_index=True, max_length=128)),
                ('patient_name', models.CharField(blank=True, max_length=128)),
                ('contact_phone', models.CharField(blank=True, max_length=32)),
                ('age', models.PositiveIntegerField()),
                ('symptom_text', models.TextField(blank=True)),
                ('is_pregnant', models.BooleanField(default=False)),
                ('has_disability', models.BooleanField(default=False)),
                ('status', models.CharField(choices=[('waiting', 'Waiting'), ('called', 'Called'), ('in-progress', 'In progress'), ('completed', 'Completed'), ('no-show', 'No show')], default='waiting', max_length=16)),
                ('priority_score', models.PositiveSmallIntegerField(default=0)),
                ('priority_tier', models.CharField(choices=[('critical', 'Critical'), ('high', 'High'), ('medium', 'Medium'), ('standard', 'Standard'), ('low', 'Low')], default='standard', max_length=16)),
                ('escalated', models.BooleanField(default=False)),
                ('escalation_override', models.BooleanField(default=False)),
                ('current_position', models.PositiveIntegerField(blank=True, null=True)),
                ('estimated_wait_minutes', models.PositiveIntegerField(blank=True, null=True)),
                ('created_at', models.DateTimeField()),
                ('last_status_change_at', models.DateTimeField()),
            ],
            options={
                'indexes': [
                    models.Index(fields=['hospital', 'department', 'status'], name='entry_partition_status_idx'),
                    models.Index(fields=['hospital', 'department', 'current_position'], name='entry_partition_pos_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='NotificationLog',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('kind', models.CharField(choices=[('position_improved', 'Position improved'), ('almost_ready', 'Almost ready'), ('next_patient', 'Next patient'), ('called', 'Called'), ('completed', 'Completed'), ('priority_escalated', 'Priority escalated'), ('broadcast', 'Broadcast')], max_length=32)),
                ('severity', models.CharField(choices=[('info', 'Info'), ('warning', 'Warning'), ('urgent', 'Urgent'), ('success', 'Success')], max_length=16)),
                ('message', models.TextField()),
                ('channel', models.CharField(default='push', max_length=32)),
                ('outcome', models.CharField(choices=[('sent', 'sent'), ('failed', 'failed'), ('skipped', 'skipped')], default='sent', max_length=16)),
                ('detail', models.JSONField(blank=True, default=dict)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('entry', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='notifications', to='triage.queueentry')),
            ],
            options={
                'indexes': [models.Index(fields=['entry', 'created_at'], name='notification_entry_ts_idx')],
            },
        ),
        migrations.CreateModel(
            name='StatusTransition',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('from_status', models.CharField(choices=[('waiting', 'Waiting'), ('called', 'Called'), ('in-progress', 'In progress'), ('completed', 'Completed'), ('no-show', 'No show')], max_length=16)),
                ('to_status', models.CharField(choices=[('waiting', 'Waiting'), ('called', 'Called'), ('in-progress', 'In progress'), ('completed', 'Completed'), ('no-show', 'No show')], max_length=16)),
                ('actor', models.CharField(blank=True, max_length=150)),
                ('reason', models.CharField(blank=True, max_length=255)),
                ('escalation', models.BooleanField(default=False)),
                ('timestamp', models.DateTimeField()),
                ('entry', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='transitions', to='triage.queueentry')),
            ],
            options={
                'indexes': [models.Index(fields=['entry', 'timestamp'], name='transition_entry_ts_idx')],
            },
        ),
    ]
