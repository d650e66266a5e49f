from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ('enrollment', '0001_initial'),
    ]

    operations = [
        migrations.AddField(
            model_name='enrollment',
            name='balance_invoice_id',
            field=models.CharField(blank=True, help_text='Draft balance invoice opened for a deposit checkout', max_length=255),
        ),
    ]
