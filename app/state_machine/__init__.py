"""
State Machine Module for the studio conversation flow
"""
from app.state_machine.engine import ConversationEngine
from app.state_machine.steps import Step
from app.state_machine.types import ConversationStep

__all__ = ["ConversationEngine", "ConversationStep", "Step"]
