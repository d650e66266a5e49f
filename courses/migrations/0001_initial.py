from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='Section',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('label', models.CharField(max_length=100, unique=True)),
                ('max_capacity', models.PositiveIntegerField()),
                ('enrolled_count', models.PositiveIntegerField(default=0)),
                ('status', models.CharField(choices=[('OPEN', 'Open'), ('FULL', 'Full'), ('CLOSED', 'Closed')], default='OPEN', max_length=10)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'ordering': ['label'],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('enrolled_count__lte', models.F('max_capacity'))), name='section_enrolled_within_capacity'),
                    models.CheckConstraint(condition=models.Q(('max_capacity__gt', 0)), name='section_capacity_positive'),
                ],
            },
        ),
    ]
