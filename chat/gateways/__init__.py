"""Typed clients over the external collaborators of the chat pipeline."""

from chat.gateways.history import HistoryGateway
from chat.gateways.model import ModelGateway
from chat.gateways.reply import ReplyGateway
from chat.gateways.template import TemplateGateway

__all__ = ["HistoryGateway", "ModelGateway", "ReplyGateway", "TemplateGateway"]
