import os
import subprocess
import sys

from django.conf import settings
from django.test import SimpleTestCase
from rest_framework import exceptions as drf_exceptions
from rest_framework import status
from rest_framework.settings import api_settings

from marketchat.exception_handler import chat_exception_handler
from marketchat.exceptions import Forbidden, StoreFailure


class ExceptionHandlerTest(SimpleTestCase):
    context = {"view": None}

    def test_chat_errors_use_their_status(self):
        response = chat_exception_handler(Forbidden("Access denied to conversation"), self.context)

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data, {
            "success": False, "message": "Access denied to conversation", "error": "forbidden",
        })

    def test_store_failure_is_500(self):
        with self.assertLogs("marketchat.exception_handler", level="ERROR"):
            response = chat_exception_handler(StoreFailure(), self.context)

        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertEqual(response.data["error"], "store_failure")

    def test_drf_errors_are_wrapped(self):
        response = chat_exception_handler(drf_exceptions.NotAuthenticated(), self.context)

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertFalse(response.data["success"])
        self.assertEqual(response.data["error"], "unauthenticated")

        response = chat_exception_handler(drf_exceptions.ValidationError({"userId": ["required"]}), self.context)
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["message"], "Invalid request")

    def test_unexpected_errors_are_500(self):
        with self.assertLogs("marketchat.exception_handler", level="ERROR"):
            response = chat_exception_handler(RuntimeError("boom"), self.context)

        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertEqual(response.data["message"], "Internal server error")

    def test_configured_as_drf_handler(self):
        self.assertIs(api_settings.EXCEPTION_HANDLER, chat_exception_handler)


class AppLoadingTest(SimpleTestCase):
    def test_fresh_interpreter_loads_apps_and_auth_classes(self):
        code = (
            "import django\n"
            "import marketchat.exceptions\n"
            "django.setup()\n"
            "from rest_framework.settings import api_settings\n"
            "print(api_settings.DEFAULT_AUTHENTICATION_CLASSES[0].__name__)\n"
        )
        env = dict(os.environ, DJANGO_SETTINGS_MODULE="marketchat.settings")

        result = subprocess.run(
            [sys.executable, "-c", code],
            cwd=str(settings.BASE_DIR), env=env, capture_output=True, text=True, timeout=60,
        )

        self.assertEqual(result.returncode, 0, result.stderr)
        self.assertIn("SessionCredentialAuthentication", result.stdout)
