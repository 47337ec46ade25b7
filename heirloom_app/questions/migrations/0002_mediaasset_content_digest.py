from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ("questions", "0001_initial"),
    ]

    operations = [
        migrations.AddField(
            model_name="mediaasset",
            name="content_digest",
            field=models.CharField(
                blank=True,
                default="",
                help_text="SHA-256 of the uploaded bytes",
                max_length=64,
            ),
        ),
    ]
