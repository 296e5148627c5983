from .reporter import JobReporter, handle_sns_event
from .discord import DiscordNotifier, format_message
from .sns_service import SNSService
