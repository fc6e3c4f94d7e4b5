"""
Kling Panel Core Components

Provides foundational infrastructure for the generation core:
- Environment driven configuration
- Credential storage for the API token
"""

from .config import Config, get_config
from .credentials import CredentialStore

__all__ = ["Config", "get_config", "CredentialStore"]
