"""
Lead qualification conversations: flow-graph state machine, LLM
classify-and-extract contract and rule-based content matching.
"""

__version__ = "0.1.0"
