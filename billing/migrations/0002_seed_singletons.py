from django.db import migrations


def seed_singletons(apps, schema_editor):
    BillingSettings = apps.get_model('billing', 'BillingSettings')
    CompanyProfile = apps.get_model('billing', 'CompanyProfile')
    BillingSettings.objects.get_or_create(singleton=True)
    CompanyProfile.objects.get_or_create(singleton=True)


class Migration(migrations.Migration):

    dependencies = [
        ('billing', '0001_initial'),
    ]

    operations = [
        migrations.RunPython(seed_singletons, reverse_code=migrations.RunPython.noop),
    ]
