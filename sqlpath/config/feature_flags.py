"""
sqlpath/config/feature_flags.py
Environment-driven feature switches

Every flag defaults to on; set e.g. FEATURE_CERTIFICATES=false to turn a
subsystem off without a deploy.
"""
import os


def get_bool_env(key: str, default: bool = False) -> bool:
    value = os.getenv(key, str(default)).lower()
    return value in ('true', '1', 'yes', 'on', 'enabled')


class FeatureFlags:

    # Dashboard reconciliation persists the path / course statuses it corrects
    FEATURE_STATUS_WRITEBACK: bool = get_bool_env('FEATURE_STATUS_WRITEBACK', True)

    # Practice track reuses generated challenges per (topic, industry, difficulty)
    FEATURE_CHALLENGE_INVENTORY: bool = get_bool_env('FEATURE_CHALLENGE_INVENTORY', True)

    # Certificate claims (HCTI renderer + object storage)
    FEATURE_CERTIFICATES: bool = get_bool_env('FEATURE_CERTIFICATES', True)

    # Achievement unlocking after correct submissions
    FEATURE_ACHIEVEMENTS: bool = get_bool_env('FEATURE_ACHIEVEMENTS', True)

    @classmethod
    def get_all_flags(cls) -> dict:
        return {
            key: value
            for key, value in vars(cls).items()
            if key.startswith('FEATURE_') and isinstance(value, bool)
        }


feature_flags = FeatureFlags()
