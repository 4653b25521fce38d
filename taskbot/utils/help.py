"""Help message and help-request detection."""

from .slack_text import MENTION_PATTERN, strip_mentions

HELP_MESSAGE = """*Welcome to TaskBot!* :robot_face:

I help you explore the codebase and turn requests into detailed task specifications.

*How to Use Me:*

*1. Ask Questions About the Codebase* :mag:
Just @mention me with your question:
```@TaskBot How does authentication work?
@TaskBot What fields does the User content type have?```

*2. Create Task Specifications* :clipboard:
Describe what you need:
```@TaskBot Add password reset feature
@TaskBot Fix bug in user profile upload```

I'll ask clarifying questions about requirements, edge cases, business rules and data.

*3. Switch from Questions to Tasks* :arrows_counterclockwise:
If you're asking questions and decide you need a task spec, just say *"create a spec"*.

*4. Generate the Specification* :memo:
When you're ready, say *"generate spec"*, *"ready"*, *"looks good"*, *"that's all"* or *"done"*.

*5. Create a Jira Ticket (Optional)* :ticket:
After the spec, I'll offer to create a Jira ticket.
• Say `"yes"` or `"create ticket"` to accept
• Say `"no"` or `"skip"` to decline
If I can't match you to a Jira user or find an active sprint, I'll show a numbered list to pick from.

*Tips:*
• Each thread is an independent conversation
• Conversations are cleaned up after the retention window
• After a few question rounds I'll suggest finalizing the spec

*Commands:*
• `@TaskBot help` - Show this message
• `/task [description]` - Start a new task thread

_Happy speccing!_ :rocket:"""

HELP_TRIGGERS = [
    'help',
    'how do i use',
    'how to use',
    'what can you do',
    'commands',
    'instructions',
    'guide',
    'how does this work',
]


def is_help_request(message: str) -> bool:
    """Check whether a message asks the bot for usage help."""
    normalized = (message or "").lower().strip()
    without_mentions = strip_mentions(normalized)

    if without_mentions in ('help', '?'):
        return True

    # Messages tagging other people are addressed to them, not to the bot
    if MENTION_PATTERN.search(normalized):
        return False

    return any(trigger in without_mentions for trigger in HELP_TRIGGERS)
