"""Limits applied to groups, memberships and chat messages."""

GROUP_TITLE_MIN_LENGTH = 3
GROUP_TITLE_MAX_LENGTH = 100
GROUP_DESCRIPTION_MAX_LENGTH = 500
GROUP_MIN_CAPACITY = 2
GROUP_MAX_CAPACITY = 100
GROUP_DEFAULT_CAPACITY = 50
GROUP_MIN_GOAL_HOURS = 1
GROUP_MAX_GOAL_HOURS = 24
GROUP_MAX_TAGS = 10
GROUP_TAG_MAX_LENGTH = 50

MESSAGE_FILE_NAME_MAX_LENGTH = 255
MESSAGE_FILE_URL_MAX_LENGTH = 1024

PAGE_MAX_LIMIT = 100

TRENDING_WINDOW_DAYS = 7
TRENDING_DEFAULT_LIMIT = 10
TRENDING_MAX_LIMIT = 50
