"""
Kling Panel CLI Tools

Command-line tools for driving the generation core without the editor.

Tools:
- generate: Submit a prompt and download the result
"""

from .generate import run_generation

__all__ = ["run_generation"]
