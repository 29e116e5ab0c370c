from django.core.management.base import BaseCommand
from django.contrib.auth import get_user_model
from django.db import transaction
from django.utils.text import slugify
from tenants.models import Tenant

User = get_user_model()


class Command(BaseCommand):
    help = 'Create a tenant (if missing) together with an internal admin user'

    def add_arguments(self, parser):
        parser.add_argument('tenant_name', type=str, help='Tenant name')
        parser.add_argument('email', type=str, help='Admin email')
        parser.add_argument('password', type=str, help='Admin password')
        parser.add_argument('--slug', type=str, default='', help='Tenant slug (defaults to slugified name)')
        parser.add_argument('--first-name', type=str, default='', help='First name')
        parser.add_argument('--last-name', type=str, default='', help='Last name')

    def handle(self, *args, **options):
        slug = options['slug'] or slugify(options['tenant_name'])

        if User.objects.filter(email=options['email']).exists():
            self.stdout.write(
                self.style.ERROR(f'User with email "{options["email"]}" already exists')
            )
            return

        with transaction.atomic():
            tenant, created = Tenant.objects.get_or_create(
                slug=slug,
                defaults={'name': options['tenant_name']}
            )
            if created:
                self.stdout.write(self.style.SUCCESS(f'Created tenant "{tenant.name}" ({tenant.slug})'))

            user = User.objects.create_user(
                email=options['email'],
                password=options['password'],
                tenant=tenant,
                first_name=options['first_name'],
                last_name=options['last_name'],
                role='admin',
                is_staff=True,
            )

        self.stdout.write(
            self.style.SUCCESS(
                f'Successfully created admin user "{user.email}" for tenant "{tenant.name}"'
            )
        )
