"""Slack TaskBot - turns Slack threads into task specifications and Jira tickets."""

__version__ = "1.0.0"
