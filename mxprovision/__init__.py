"""Single-host mail/web server provisioning pipeline."""

__version__ = "0.3.0"
