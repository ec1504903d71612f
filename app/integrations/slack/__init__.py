# Slack integration module
from app.integrations.slack.client import SlackClient, ConversationServiceError
from app.integrations.slack.interactions import parse_interaction, InteractionParseError

__all__ = ["SlackClient", "ConversationServiceError", "parse_interaction", "InteractionParseError"]
