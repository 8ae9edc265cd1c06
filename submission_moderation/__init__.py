"""Submission moderation pipeline."""
