"""GTC workflow server: conventions, point onboarding, session tokens and notifications."""

__version__ = "0.1.0"
