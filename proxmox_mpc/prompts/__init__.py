"""Prompt templates and renderer."""

from proxmox_mpc.prompts.renderer import PromptRenderer, format_value, tokenize
from proxmox_mpc.prompts.templates import BUILTIN_TEMPLATES, PromptTemplate

__all__ = ["BUILTIN_TEMPLATES", "PromptRenderer", "PromptTemplate", "format_value", "tokenize"]
