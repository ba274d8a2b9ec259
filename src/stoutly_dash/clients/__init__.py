"""HTTP clients for the third-party services behind the dashboard."""
