from .rewards import RewardsObservabilityStore, RewardsSnapshot, get_rewards_store  # noqa: F401
