"""Assignment submission API: tokens, payments, uploads and admin listings."""

__version__ = "1.0.0"
