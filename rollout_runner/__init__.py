"""Rollout Runner — drives a staged rollout to completion.

Previews the rollout topology of a plan, creates the rollout, and then
advances it one stage at a time: instantiating each stage on demand,
triggering its tasks, and polling until the target stage is done.
"""

__version__ = "0.1.0"
