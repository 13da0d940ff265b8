"""HTTP API for salaries and notifications."""
