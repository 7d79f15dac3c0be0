from rollout_runner.config.settings import RolloutSettings, get_settings, project_from_plan

__all__ = ["RolloutSettings", "get_settings", "project_from_plan"]
