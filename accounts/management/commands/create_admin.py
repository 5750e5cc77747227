from django.core.management.base import BaseCommand, CommandError
from django.contrib.auth import get_user_model

from accounts.models import Agency
from core.constants import UserRole


class Command(BaseCommand):
    help = 'Create an agency and its admin user if they do not exist'

    def add_arguments(self, parser):
        parser.add_argument('--agency', default='Haven Agency', help='Agency name')
        parser.add_argument('--username', default='admin')
        parser.add_argument('--email', default='')
        parser.add_argument('--password', help='Password for the new user (required)')

    def handle(self, *args, **options):
        User = get_user_model()
        username = options['username']

        if User.objects.filter(username=username).exists():
            self.stdout.write(self.style.WARNING(f'User {username} already exists'))
            return
        if not options['password']:
            raise CommandError('--password is required')

        agency, created = Agency.objects.get_or_create(name=options['agency'])
        if created:
            self.stdout.write(self.style.SUCCESS(f'Created agency {agency.name}'))

        user = User(
            username=username,
            email=options['email'],
            is_staff=True,
            is_superuser=True,
            is_active=True,
            agency=agency,
            role=UserRole.ADMIN,
        )
        user.set_password(options['password'])
        user.save()

        self.stdout.write(self.style.SUCCESS(f'Agency admin created: {username}'))
