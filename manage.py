#!/usr/bin/env python
"""Command-line entry point for the scheduling backend.

Typical use::

    python manage.py migrate
    python manage.py ensure_demo_data
    python manage.py runserver
"""
import os
import sys


def main() -> None:
    os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'hospital.settings')
    from django.core.management import execute_from_command_line  # type: ignore

    execute_from_command_line(sys.argv)


if __name__ == '__main__':
    main()
