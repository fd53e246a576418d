# Data factories for test data generation

from tests.support.factories.domain_factory import (
    create_automation,
    create_character,
    create_review_checkpoint,
    create_series,
    create_social_account,
    create_user,
    create_video,
    month_ago,
    persist,
)

__all__ = [
    "create_automation",
    "create_character",
    "create_review_checkpoint",
    "create_series",
    "create_social_account",
    "create_user",
    "create_video",
    "month_ago",
    "persist",
]
