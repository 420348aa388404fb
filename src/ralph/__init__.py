"""Ralph: an autonomous agent loop that works through a PRD checklist."""

__version__ = "0.1.0"
