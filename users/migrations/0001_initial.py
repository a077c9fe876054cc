from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='User',
            fields=[
                ('user_id', models.CharField(max_length=100, primary_key=True, serialize=False, unique=True)),
                ('user_name', models.CharField(max_length=100)),
                ('email', models.EmailField(blank=True, max_length=255, null=True)),
                ('user_type', models.CharField(choices=[('client', 'Client'), ('vendor', 'Vendor'), ('admin', 'Admin')], default='client', max_length=10)),
                ('is_active', models.BooleanField(default=True)),
                ('language', models.CharField(default='en', max_length=10)),
                ('push_token', models.CharField(blank=True, max_length=255, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'db_table': 'users',
                'indexes': [
                    models.Index(fields=['user_name'], name='users_user_na_0f5e3a_idx'),
                    models.Index(fields=['email'], name='users_email_4b85f2_idx'),
                    models.Index(fields=['user_type', 'is_active'], name='users_user_ty_8c1d7e_idx'),
                ],
            },
        ),
    ]
