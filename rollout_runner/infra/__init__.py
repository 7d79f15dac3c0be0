from rollout_runner.infra.rollout_client import MINIMUM_SERVER_VERSION, RolloutClient

__all__ = [
    "MINIMUM_SERVER_VERSION",
    "RolloutClient",
]
