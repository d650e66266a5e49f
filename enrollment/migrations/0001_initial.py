import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('courses', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='Enrollment',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('email', models.EmailField(blank=True, max_length=254)),
                ('plan', models.CharField(choices=[('DEPOSIT', 'Deposit'), ('FULL', 'Full')], default='FULL', max_length=10)),
                ('payment_status', models.CharField(choices=[('PENDING', 'Pending'), ('PAID', 'Paid'), ('WAITLISTED', 'Waitlisted'), ('REMOVED', 'Removed')], default='PENDING', max_length=12)),
                ('waitlist_position', models.PositiveIntegerField(blank=True, null=True)),
                ('stripe_session_id', models.CharField(max_length=255, unique=True)),
                ('stripe_customer_id', models.CharField(blank=True, max_length=255)),
                ('payment_collected', models.BooleanField(default=False, help_text='Whether the processor confirmed money was taken for this checkout')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('section', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='enrollments', to='courses.section')),
            ],
            options={
                'ordering': ['section_id', 'created_at'],
                'indexes': [models.Index(fields=['section', 'payment_status', 'waitlist_position'], name='enrollment_waitlist_idx')],
            },
        ),
    ]
