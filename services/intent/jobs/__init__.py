"""
Batch jobs for the intent service.

These run as standalone Python scripts via cron / a scheduler,
NOT inside the FastAPI process.

Usage:
    python -m services.intent.jobs.event_cleanup [--retention-days N]
"""
