"""Drupot: a Drupal honeypot that reports attack events over hpfeeds."""

__version__ = "0.1.0"
