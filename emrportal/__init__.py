"""Django project package for the EMR patient portal."""
