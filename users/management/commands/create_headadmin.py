from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand, CommandError

User = get_user_model()


class Command(BaseCommand):
    help = 'Creates the platform head admin account'

    def add_arguments(self, parser):
        parser.add_argument('--email', required=True)
        parser.add_argument('--password', required=True)
        parser.add_argument('--first-name', default='Head')
        parser.add_argument('--last-name', default='Admin')

    def handle(self, *args, **options):
        email = options['email'].strip().lower()
        if User.objects.filter(email__iexact=email).exists():
            raise CommandError(f"{email} already exists")

        User.objects.create_user(
            username=email,
            email=email,
            password=options['password'],
            first_name=options['first_name'],
            last_name=options['last_name'],
            role=User.Role.HEADADMIN,
            is_staff=True,
        )
        self.stdout.write(self.style.SUCCESS(f"Head admin {email} created"))
