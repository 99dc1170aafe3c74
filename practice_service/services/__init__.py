"""Business logic for sheets, problems, progress, announcements and jobs."""
