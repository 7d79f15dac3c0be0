"""Rollout Runner utilities."""
