from ferry.transform.base import BaseTransformer, ReshapedInstructions
from ferry.transform.chatgpt_to_claude import ChatGPTToClaudeTransformer
from ferry.transform.claude_to_chatgpt import ClaudeToChatGPTTransformer

__all__ = [
    "BaseTransformer",
    "ChatGPTToClaudeTransformer",
    "ClaudeToChatGPTTransformer",
    "ReshapedInstructions",
]
