"""EMS payroll: salary processing, corrections and realtime notifications."""

__version__ = "0.1.0"
