#!/usr/bin/env python
import os
import sys


def main():
    command = sys.argv[1] if len(sys.argv) > 1 else ""
    default_settings = "qna_be.test_settings" if command == "test" else "qna_be.settings"
    os.environ.setdefault("DJANGO_SETTINGS_MODULE", default_settings)

    from django.core.management import execute_from_command_line
    from django.conf import settings

    # `runserver` with no address listens on the configured PORT
    if command == "runserver" and not any(not a.startswith("-") for a in sys.argv[2:]):
        sys.argv.append(f"0.0.0.0:{settings.PORT}")

    execute_from_command_line(sys.argv)


if __name__ == "__main__":
    main()
