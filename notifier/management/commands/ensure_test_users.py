# notifier/management/commands/ensure_test_users.py
from django.core.management.base import BaseCommand
from django.contrib.auth.hashers import make_password
from rest_framework.authtoken.models import Token

from notifier.models import User

TEST_SET = [
    ("admin1", User.ROLE_ADMIN),
    ("doctor1", User.ROLE_DOCTOR),
    ("patient1", User.ROLE_PATIENT),
    ("reception1", User.ROLE_RECEPTIONIST),
]


class Command(BaseCommand):
    help = "Ensure test users exist with password=123456 and print their API tokens (idempotent)."

    def handle(self, *args, **opts):
        for username, role in TEST_SET:
            u, created = User.objects.get_or_create(
                username=username,
                defaults={"role": role, "password": make_password("123456"), "is_active": True},
            )
            if not created:
                # reset password, role and active flag
                u.password = make_password("123456")
                u.role = role
                u.is_active = True
                u.save(update_fields=["password", "role", "is_active"])
            token, _ = Token.objects.get_or_create(user=u)
            self.stdout.write(self.style.SUCCESS(f"ok: {username} ({role}) id={u.id} token={token.key}"))
        self.stdout.write(self.style.SUCCESS("All test users ensured."))
