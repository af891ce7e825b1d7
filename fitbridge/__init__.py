"""OAuth2 credential management for the Fitbit to Strava workout bridge."""

__version__ = "0.1.0"
