"""Bundled templates (nginx, systemd, rclone, backup script, starter plan)."""
