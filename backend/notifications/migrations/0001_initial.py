import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('drivers', '0001_initial'),
        ('courses', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='Notification',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('type', models.CharField(choices=[('new_course', 'New course'), ('course_status', 'Course status'), ('course_unlocked', 'Course unlocked'), ('course_reminder', 'Course reminder'), ('admin_course_update', 'Admin course update'), ('late_alert', 'Late alert'), ('sos_alert', 'SOS alert'), ('driver_login', 'Driver login'), ('chat', 'Chat')], max_length=30)),
                ('title', models.CharField(max_length=200)),
                ('message', models.TextField(blank=True)),
                ('read', models.BooleanField(default=False)),
                ('data', models.JSONField(blank=True, default=dict)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('course', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.CASCADE, related_name='notifications', to='courses.course')),
                ('driver', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.CASCADE, related_name='notifications', to='drivers.driver')),
            ],
            options={
                'db_table': 'driver_notifications',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['driver', 'read'], name='notif_driver_read_idx'),
                    models.Index(fields=['course', 'type', 'created_at'], name='notif_course_type_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(condition=models.Q(('type', 'new_course')), fields=('driver', 'course', 'type'), name='unique_new_course_notification'),
                ],
            },
        ),
    ]
