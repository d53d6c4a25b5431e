# UI module - Terminal approval dialog

from .approval import ApprovalPrompt, render_request, response_for_choice

__all__ = ["ApprovalPrompt", "render_request", "response_for_choice"]
