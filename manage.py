#!/usr/bin/env python
"""
Command line entry point for the EMR portal.

Points Django at ``emrportal.settings`` and hands over to the management
utility, e.g. ``python manage.py migrate`` followed by
``python manage.py seed_demo``.
"""
import os
import sys


def main() -> None:
    """Run administrative tasks for the portal."""
    os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'emrportal.settings')
    try:
        from django.core.management import execute_from_command_line  # type: ignore
    except ImportError as exc:
        raise ImportError(
            "Couldn't import Django. Is it installed and available on your "
            "PYTHONPATH? Did you forget to activate a virtual environment?"
        ) from exc
    execute_from_command_line(sys.argv)


if __name__ == '__main__':
    main()
